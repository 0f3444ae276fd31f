"""Data carried through one detector run."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

OK = "OK"
DEGRADED = "DEGRADED"
MAJOR_OUTAGE = "MAJOR_OUTAGE"
RECOVERED = "RECOVERED"

STATES = (OK, DEGRADED, MAJOR_OUTAGE, RECOVERED)
PROVIDER_TYPES = ("mobile", "isp", "cloud")


@dataclass(frozen=True)
class Signal:
    """One pass/fail reachability check."""

    name: str
    ok: bool
    latency_ms: float
    detail: Optional[str] = None
    status: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": self.name, "ok": self.ok, "ms": round(self.latency_ms, 2)}
        if self.status is not None:
            payload["status"] = self.status
        if self.detail is not None:
            payload["detail"] = self.detail
        return payload


@dataclass(frozen=True)
class ProviderDefinition:
    """A provider as listed in one of the provider files."""

    name: str
    type: str
    probe_urls: List[str] = field(default_factory=list)
    dns_hosts: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PersistedProviderState:
    """Hysteresis counters kept between runs, one per provider."""

    state: str = OK
    fail_streak: int = 0
    ok_streak: int = 0
    first_seen: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "failStreak": self.fail_streak,
            "okStreak": self.ok_streak,
            "firstSeen": self.first_seen,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "PersistedProviderState":
        """Build from stored JSON; anything malformed reads as fresh state."""

        if not isinstance(payload, dict):
            return cls()
        state = payload.get("state", OK)
        fail_streak = payload.get("failStreak", 0)
        ok_streak = payload.get("okStreak", 0)
        first_seen = payload.get("firstSeen")
        if state not in STATES:
            return cls()
        for counter in (fail_streak, ok_streak):
            if isinstance(counter, bool) or not isinstance(counter, int) or counter < 0:
                return cls()
        if fail_streak > 0 and ok_streak > 0:
            return cls()
        if first_seen is not None and not isinstance(first_seen, str):
            first_seen = None
        return cls(state=state, fail_streak=fail_streak, ok_streak=ok_streak, first_seen=first_seen)

    def evolve(self, **changes: Any) -> "PersistedProviderState":
        return replace(self, **changes)


@dataclass(frozen=True)
class NodeReport:
    """Result of evaluating one provider during one run."""

    provider: str
    provider_type: str
    raw_state: str
    confirmed_state: str
    confidence: float
    signals: List[Signal]
    first_seen: Optional[str]
    last_seen: str
    control_ok: bool
