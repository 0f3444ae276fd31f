"""Outgoing payloads: outage events, the heartbeat and the node status."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Sequence

from observers.carrier_outage.config import DetectorConfig
from observers.carrier_outage.models import (
    DEGRADED,
    MAJOR_OUTAGE,
    OK,
    PROVIDER_TYPES,
    NodeReport,
    Signal,
)

DETECTOR_NAME = "carrier-outage-observer"
OUTAGE_EVENT = "carrier_outage"
HEARTBEAT_EVENT = "carrier_outage_heartbeat"


def summarize_group(reports: Iterable[NodeReport]) -> str:
    states = {report.confirmed_state for report in reports}
    if MAJOR_OUTAGE in states:
        return MAJOR_OUTAGE
    if DEGRADED in states:
        return DEGRADED
    return OK


def group_summary(reports: Sequence[NodeReport]) -> Dict[str, str]:
    return {
        kind: summarize_group(r for r in reports if r.provider_type == kind)
        for kind in PROVIDER_TYPES
    }


def summary_lines(
    config: DetectorConfig,
    reports: Sequence[NodeReport],
    controls: Sequence[Signal],
    gate_ok: bool,
    ts: str,
) -> List[str]:
    """Human-readable run summary, one line per provider type."""

    passed = sum(1 for signal in controls if signal.ok)
    lines = [
        f"region={config.region} ts={ts}",
        f"CONTROL: {'OK' if gate_ok else 'FAIL'} ({passed}/{len(controls)})",
    ]
    for kind in PROVIDER_TYPES:
        members = [r for r in reports if r.provider_type == kind]
        label = kind.upper()
        if not members:
            lines.append(f"{label}: (no providers)")
            continue
        parts = ", ".join(f"{r.provider}={r.confirmed_state}" for r in members)
        lines.append(f"{label}: {summarize_group(members)} ({parts})")
    return lines


def outage_event(
    config: DetectorConfig,
    report: NodeReport,
    controls: Sequence[Signal],
    groups: Dict[str, str],
) -> Dict[str, Any]:
    return {
        "type": OUTAGE_EVENT,
        "detector": DETECTOR_NAME,
        "region": config.region,
        "provider": report.provider,
        "providerType": report.provider_type,
        "state": report.confirmed_state,
        "rawState": report.raw_state,
        "confidence": round(report.confidence, 4),
        "signals": [signal.to_dict() for signal in [*controls, *report.signals]],
        "firstSeen": report.first_seen,
        "lastSeen": report.last_seen,
        "groupSummary": groups,
    }


def heartbeat_event(
    config: DetectorConfig,
    controls: Sequence[Signal],
    gate_ok: bool,
    groups: Dict[str, str],
    ts: str,
) -> Dict[str, Any]:
    return {
        "type": HEARTBEAT_EVENT,
        "detector": DETECTOR_NAME,
        "region": config.region,
        "state": OK,
        "ts": ts,
        "control": {
            "ok": gate_ok,
            "passed": sum(1 for signal in controls if signal.ok),
            "total": len(controls),
        },
        "groupSummary": groups,
    }


def node_status(config: DetectorConfig, gate_ok: bool, ts: str) -> Dict[str, Any]:
    """This node's status as the aggregator consumes it."""

    return {
        "nodeId": config.node.node_id,
        "providerHint": config.node.provider_hint,
        "state": config.node.state,
        "region": config.region,
        "regionWeight": config.node.region_weight,
        "controlOk": gate_ok,
        "presence": "ONLINE",
        "ts": ts,
    }
