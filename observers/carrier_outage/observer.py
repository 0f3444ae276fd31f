"""Single-node carrier outage detector.

One invocation is one observation: run the control probes, probe every
configured provider, fold the results through the persisted hysteresis
state and emit outage events (or a heartbeat when all is quiet). Meant to
be scheduled from cron; a later run is the retry.
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from observers.carrier_outage import events
from observers.carrier_outage.config import (
    ConfigError,
    DetectorConfig,
    load_config,
    load_providers,
    resolve_config_path,
)
from observers.carrier_outage.evaluator import control_ok, evaluate_provider
from observers.carrier_outage.hysteresis import next_state
from observers.carrier_outage.models import OK, NodeReport, Signal
from observers.carrier_outage.probes import (
    DnsProbe,
    HttpProbe,
    control_signals,
    dns_probe,
    http_probe,
    provider_signals,
)
from observers.carrier_outage.state_store import JsonFileStateStore, StateStore
from observers.common.log import setup_logger
from observers.common.timeutil import to_iso, utc_now
from observers.common.transport import RedisTransport, publish_quietly

LOGGER = logging.getLogger(__name__)


@dataclass
class RunResult:
    control_ok: bool
    control_signals: List[Signal]
    reports: List[NodeReport]
    events: List[Dict[str, Any]] = field(default_factory=list)
    node_status: Dict[str, Any] = field(default_factory=dict)
    published: int = 0


def run(
    config: DetectorConfig,
    store: StateStore,
    *,
    now: datetime,
    http: Optional[HttpProbe] = None,
    dns_lookup: Optional[DnsProbe] = None,
    transport: Optional[RedisTransport] = None,
    emit: Optional[Callable[[str], None]] = None,
) -> RunResult:
    """Run the detector once and return everything it produced."""

    ts = to_iso(now)
    http = http or http_probe
    dns_lookup = dns_lookup or dns_probe
    providers = load_providers(config)

    controls = control_signals(config.control_probes, config.timeout_s, probe=http)
    gate_ok = control_ok(controls)
    if not gate_ok:
        LOGGER.warning("control probes failing; provider outages suppressed for this run")

    reports: List[NodeReport] = []
    for provider in providers:
        signals = provider_signals(provider, config.timeout_s, http=http, dns_lookup=dns_lookup)
        raw_state, confidence = evaluate_provider(signals, gate_ok)
        persisted = next_state(
            store.get(provider.name),
            raw_state,
            config.fail_for_major,
            config.ok_for_recovery,
            ts,
        )
        store.put(provider.name, persisted)
        reports.append(NodeReport(
            provider=provider.name,
            provider_type=provider.type,
            raw_state=raw_state,
            confirmed_state=persisted.state,
            confidence=confidence,
            signals=signals,
            first_seen=persisted.first_seen,
            last_seen=ts,
            control_ok=gate_ok,
        ))

    store.save()

    for line in events.summary_lines(config, reports, controls, gate_ok, ts):
        LOGGER.info("%s", line)

    groups = events.group_summary(reports)
    result = RunResult(control_ok=gate_ok, control_signals=controls, reports=reports)
    for report in reports:
        if report.confirmed_state == OK:
            continue
        result.events.append(events.outage_event(config, report, controls, groups))
    if not result.events:
        result.events.append(events.heartbeat_event(config, controls, gate_ok, groups, ts))

    for event in result.events:
        if emit is not None and config.emit_json:
            emit(json.dumps(event, ensure_ascii=False))
        if event["type"] == events.OUTAGE_EVENT:
            topic = f"{config.transport.events_base}/{event['provider']}"
            result.published += publish_quietly(transport, topic, event)

    result.node_status = events.node_status(config, gate_ok, ts)
    topic = f"{config.transport.local_base}/{config.node.node_id}"
    result.published += publish_quietly(transport, topic, result.node_status)
    return result


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Detect carrier outages from public reachability signals.")
    parser.add_argument("--config", help="Config JSON (default: $CARRIER_OUTAGE_CONFIG or config.json)")
    parser.add_argument("--state", help="Override the persisted state file")
    parser.add_argument("--log-file", help="Also log to this file, rotated daily")
    parser.add_argument("--verbose", action="store_true", help="Log individual probe failures")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logger = setup_logger(
        "observers",
        Path(args.log_file) if args.log_file else None,
        level=logging.DEBUG if args.verbose else logging.INFO,
    )

    try:
        config = load_config(resolve_config_path(args.config))
        store = JsonFileStateStore(Path(args.state) if args.state else config.state_path)
        transport = RedisTransport(config.transport.url) if config.transport.enabled else None
        try:
            run(config, store, now=utc_now(), transport=transport, emit=print)
        finally:
            if transport is not None:
                transport.close()
    except ConfigError as exc:
        logger.error("fatal: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
