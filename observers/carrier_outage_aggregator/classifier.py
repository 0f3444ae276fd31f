"""Scope classification with escalation debounce."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Dict, Sequence

from observers.carrier_outage_aggregator.models import (
    LOCAL,
    NATIONWIDE,
    SCOPE_RANK,
    STATE,
    NodeStatus,
    ProviderScopeState,
)
from observers.carrier_outage_aggregator.scoring import known_states


@dataclass(frozen=True)
class ScopeThresholds:
    nationwide_states_min: int = 3
    nationwide_nodes_min: int = 5
    state_min: int = 2
    debounce_ms: int = 90_000


def classify(nodes: Sequence[NodeStatus], thresholds: ScopeThresholds) -> str:
    """Raw scope of one provider's impacted group, before debounce."""

    if (
        len(known_states(nodes)) >= thresholds.nationwide_states_min
        or len(nodes) >= thresholds.nationwide_nodes_min
    ):
        return NATIONWIDE
    per_state = Counter(node.state for node in nodes if node.state)
    if any(count >= thresholds.state_min for count in per_state.values()):
        return STATE
    return LOCAL


class ScopeClassifier:
    """Holds the reported scope per provider.

    Escalation is accepted only once the raw scope has stayed above the
    reported one for ``debounce_ms`` without a break; de-escalation is
    immediate. A provider seen for the first time starts at LOCAL.

    While an escalation is pending, ``pending`` is the lowest raw scope seen
    since ``pending_since``, so a wobble between STATE and NATIONWIDE still
    matures into STATE.
    """

    def __init__(self, thresholds: ScopeThresholds | None = None):
        self.thresholds = thresholds or ScopeThresholds()
        self.debounce = timedelta(milliseconds=self.thresholds.debounce_ms)
        self.states: Dict[str, ProviderScopeState] = {}

    def resolve(self, provider: str, raw_scope: str, now: datetime) -> str:
        current = self.states.get(provider)
        if current is None:
            current = ProviderScopeState(scope=LOCAL, since=now)

        if SCOPE_RANK[raw_scope] <= SCOPE_RANK[current.scope]:
            if raw_scope == current.scope:
                # any pending escalation is broken off
                current = ProviderScopeState(scope=current.scope, since=current.since)
            else:
                current = ProviderScopeState(scope=raw_scope, since=now)
            self.states[provider] = current
            return current.scope

        if current.pending is None or current.pending_since is None:
            current = replace(current, pending=raw_scope, pending_since=now)
        elif SCOPE_RANK[raw_scope] < SCOPE_RANK[current.pending]:
            current = replace(current, pending=raw_scope)

        if now - current.pending_since < self.debounce:
            self.states[provider] = current
            return current.scope

        self.states[provider] = ProviderScopeState(scope=current.pending, since=now)
        return current.pending

    def forget(self, provider: str) -> None:
        self.states.pop(provider, None)
