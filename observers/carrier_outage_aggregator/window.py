"""Sliding window over the latest status of every known node."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List

from observers.carrier_outage_aggregator.models import NodeStatus


class AggregatorWindow:
    """Map of the latest status per node.

    Callers overlay each message onto the previous entry before ``update``;
    the merged status replaces the entry. Entries are never evicted;
    staleness is decided when the window is read.
    """

    def __init__(self, window_ms: int = 10 * 60 * 1000):
        self.window = timedelta(milliseconds=window_ms)
        self.nodes: Dict[str, NodeStatus] = {}

    def update(self, status: NodeStatus) -> None:
        self.nodes[status.node_id] = status

    def is_fresh(self, status: NodeStatus, now: datetime) -> bool:
        return now - status.ts <= self.window

    def impacted_by_provider(self, now: datetime) -> Dict[str, List[NodeStatus]]:
        groups: Dict[str, List[NodeStatus]] = {}
        for status in self.nodes.values():
            if not self.is_fresh(status, now) or not status.impacted:
                continue
            groups.setdefault(status.provider_hint, []).append(status)
        return groups
