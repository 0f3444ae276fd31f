"""Confidence and severity for an impacted node group."""

from __future__ import annotations

import math
from typing import Sequence, Set

from observers.carrier_outage_aggregator.models import NATIONWIDE, STATE, NodeStatus

CONFIDENCE_CAP = 0.95


def known_states(nodes: Sequence[NodeStatus]) -> Set[str]:
    return {node.state for node in nodes if node.state}


def group_confidence(nodes: Sequence[NodeStatus]) -> float:
    """Saturating in both total region weight and geographic spread."""

    if not nodes:
        return 0.0
    weight = sum(node.region_weight for node in nodes)
    score = math.log1p(weight) + math.log1p(len(known_states(nodes)))
    return min(CONFIDENCE_CAP, 1 - math.exp(-score))


def severity(scope: str, confidence: float, impacted_count: int) -> str:
    if scope == NATIONWIDE and confidence >= 0.7:
        return "critical"
    if scope == STATE and confidence >= 0.55:
        return "major"
    if impacted_count >= 4 and confidence >= 0.5:
        return "major"
    return "minor"
