"""Control gate and per-provider raw classification."""

from __future__ import annotations

from typing import Sequence, Tuple

from observers.carrier_outage.models import DEGRADED, MAJOR_OUTAGE, OK, Signal

DEGRADED_MAX_FAIL_FRACTION = 0.34
CONFIDENCE_CAP = 0.95


def control_ok(control_signals: Sequence[Signal]) -> bool:
    """Judge the node's own uplink from the control probes.

    No control probes means no gate: provider detection is not blocked.
    """

    if not control_signals:
        return True
    passed = sum(1 for signal in control_signals if signal.ok)
    # two-thirds supermajority, rounded up: 2 of 3, 3 of 4, 4 of 6
    required = max(1, (2 * len(control_signals) + 2) // 3)
    return passed >= required


def fail_fraction(signals: Sequence[Signal]) -> float:
    if not signals:
        return 0.0
    failed = sum(1 for signal in signals if not signal.ok)
    return failed / len(signals)


def state_for_fraction(frac: float) -> str:
    if frac <= 0:
        return OK
    if frac <= DEGRADED_MAX_FAIL_FRACTION:
        return DEGRADED
    return MAJOR_OUTAGE


def confidence_for(total: int, frac: float, gate_ok: bool) -> float:
    if not gate_ok or total <= 0:
        return 0.0
    return min(CONFIDENCE_CAP, max(0.0, 0.2 + 0.9 * frac))


def evaluate_provider(signals: Sequence[Signal], gate_ok: bool) -> Tuple[str, float]:
    """Return ``(raw_state, confidence)`` for one provider's signals.

    A failing control gate forces OK: a provider is never blamed while the
    measurement path itself is suspect.
    """

    frac = fail_fraction(signals)
    raw_state = state_for_fraction(frac) if gate_ok else OK
    return raw_state, confidence_for(len(signals), frac, gate_ok)
