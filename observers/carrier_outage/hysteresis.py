"""Streak-based hysteresis between raw and confirmed provider state."""

from __future__ import annotations

from typing import Optional

from observers.carrier_outage.models import (
    DEGRADED,
    MAJOR_OUTAGE,
    OK,
    RECOVERED,
    PersistedProviderState,
)


def next_state(
    previous: Optional[PersistedProviderState],
    raw_state: str,
    fail_for_major: int,
    ok_for_recovery: int,
    now_iso: str,
) -> PersistedProviderState:
    """Advance the persisted counters by one run.

    Any failing run shows as DEGRADED straight away; MAJOR_OUTAGE needs
    ``fail_for_major`` consecutive failing runs that are themselves major.
    Leaving an outage needs ``ok_for_recovery`` clean runs and passes
    through RECOVERED for exactly one run before settling on OK.
    """

    prev = previous or PersistedProviderState()

    if raw_state != OK:
        fail_streak = prev.fail_streak + 1
        # a relapse after the RECOVERED pulse is a new incident
        first_seen = prev.first_seen if prev.state != RECOVERED else None
        if raw_state == MAJOR_OUTAGE and fail_streak >= fail_for_major:
            state = MAJOR_OUTAGE
        else:
            state = DEGRADED
        return PersistedProviderState(
            state=state,
            fail_streak=fail_streak,
            ok_streak=0,
            first_seen=first_seen or now_iso,
        )

    ok_streak = prev.ok_streak + 1

    if prev.state in (OK, RECOVERED):
        return PersistedProviderState(state=OK, fail_streak=0, ok_streak=ok_streak, first_seen=None)

    if ok_streak >= ok_for_recovery:
        # firstSeen rides along on the RECOVERED run and is dropped on the next one
        return PersistedProviderState(
            state=RECOVERED, fail_streak=0, ok_streak=ok_streak, first_seen=prev.first_seen
        )

    return prev.evolve(fail_streak=0, ok_streak=ok_streak)
