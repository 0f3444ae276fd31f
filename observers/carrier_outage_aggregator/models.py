"""Aggregator-side view of nodes and per-provider scope."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from observers.common.timeutil import parse_iso

ONLINE = "ONLINE"
OFFLINE = "OFFLINE"

LOCAL = "LOCAL"
STATE = "STATE"
NATIONWIDE = "NATIONWIDE"

SCOPE_RANK = {LOCAL: 0, STATE: 1, NATIONWIDE: 2}

UNKNOWN_PROVIDER = "unknown"
DEFAULT_REGION_WEIGHT = 1.0


class MalformedMessage(ValueError):
    """An inbound node message that cannot be used."""


def message_node_id(msg: Any, topic: Optional[str] = None) -> str:
    """``nodeId`` of an inbound message, else the last segment of its topic."""

    if not isinstance(msg, dict):
        raise MalformedMessage("message is not a JSON object")
    node_id = msg.get("nodeId") or (topic.rsplit("/", 1)[-1] if topic else None)
    if not node_id:
        raise MalformedMessage("message has no nodeId")
    return str(node_id)


@dataclass(frozen=True)
class NodeStatus:
    """Latest report from one node, as last received."""

    node_id: str
    provider_hint: str
    state: Optional[str]
    region: Optional[str]
    region_weight: float
    control_ok: bool
    presence: str
    ts: datetime

    @property
    def impacted(self) -> bool:
        return self.presence == OFFLINE or not self.control_ok

    def to_message(self) -> Dict[str, Any]:
        """Wire fields of this entry, minus ``ts``."""

        return {
            "nodeId": self.node_id,
            "providerHint": self.provider_hint,
            "state": self.state,
            "region": self.region,
            "regionWeight": self.region_weight,
            "controlOk": self.control_ok,
            "presence": self.presence,
        }

    @classmethod
    def from_message(
        cls,
        msg: Any,
        received_at: datetime,
        topic: Optional[str] = None,
        previous: Optional["NodeStatus"] = None,
    ) -> "NodeStatus":
        """Validate an inbound message.

        Fields the message carries replace those of ``previous``; fields it
        omits are kept, so a bare presence notice does not lose the node's
        provider or state. A missing ``ts`` is stamped with ``received_at``;
        a present but unparseable one rejects the message.
        """

        node_id = message_node_id(msg, topic)
        if previous is not None:
            msg = {**previous.to_message(), **msg, "nodeId": node_id}

        if msg.get("ts") is None:
            ts = received_at
        else:
            ts = parse_iso(msg.get("ts"))
            if ts is None:
                raise MalformedMessage(f"unparseable ts {msg.get('ts')!r}")

        presence = str(msg.get("presence") or ONLINE).upper()
        if presence not in (ONLINE, OFFLINE):
            raise MalformedMessage(f"unknown presence {presence!r}")

        weight = msg.get("regionWeight", DEFAULT_REGION_WEIGHT)
        if isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight < 0:
            weight = DEFAULT_REGION_WEIGHT

        state = msg.get("state")
        region = msg.get("region")
        return cls(
            node_id=str(node_id),
            provider_hint=str(msg.get("providerHint") or UNKNOWN_PROVIDER),
            state=str(state) if state else None,
            region=str(region) if region else None,
            region_weight=float(weight),
            control_ok=msg.get("controlOk") is not False,
            presence=presence,
            ts=ts,
        )


@dataclass(frozen=True)
class ProviderScopeState:
    """Reported scope, plus the higher raw scope waiting out the debounce."""

    scope: str
    since: datetime
    pending: Optional[str] = None
    pending_since: Optional[datetime] = None


@dataclass(frozen=True)
class ProviderAssessment:
    """One provider's judgement for the current cycle."""

    provider: str
    scope: str
    raw_scope: str
    severity: str
    confidence: float
    impacted_count: int
    affected_states: Tuple[str, ...]

    def to_summary(self) -> Dict[str, Any]:
        return {
            "scope": self.scope,
            "severity": self.severity,
            "confidence": round(self.confidence, 4),
            "impactedCount": self.impacted_count,
            "affectedStates": list(self.affected_states),
        }
