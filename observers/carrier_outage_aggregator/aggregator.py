"""Cross-node aggregation: one handler, run to completion per message."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from observers.carrier_outage_aggregator.classifier import ScopeClassifier, classify
from observers.carrier_outage_aggregator.config import AggregatorConfig
from observers.carrier_outage_aggregator.models import (
    MalformedMessage,
    NodeStatus,
    ProviderAssessment,
    message_node_id,
)
from observers.carrier_outage_aggregator.scoring import group_confidence, known_states, severity
from observers.carrier_outage_aggregator.window import AggregatorWindow
from observers.common.timeutil import to_iso
from observers.common.transport import RedisTransport, TransportError

LOGGER = logging.getLogger(__name__)

AGGREGATOR_NAME = "carrier-outage-aggregator"
SCOPE_EVENT = "carrier_outage_scope"
SUMMARY_EVENT = "carrier_outage_summary"


@dataclass(frozen=True)
class Publication:
    """Something the aggregator wants sent; ``payload`` None clears a retained topic."""

    topic: str
    payload: Optional[Dict[str, Any]]
    retain: bool = True


class Aggregator:
    def __init__(self, config: AggregatorConfig):
        self.config = config
        self.window = AggregatorWindow(config.window_ms)
        self.classifier = ScopeClassifier(config.thresholds)
        self._last_scope_views: Dict[str, Dict[str, Any]] = {}

    def handle_raw(self, topic: str, raw: str, now: datetime) -> List[Publication]:
        try:
            msg = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            LOGGER.warning("discarding non-JSON message on %s", topic)
            return []
        return self.on_node_status(msg, now, topic=topic)

    def on_node_status(self, msg: Any, now: datetime, topic: Optional[str] = None) -> List[Publication]:
        """Record one node's status and re-evaluate every provider."""

        try:
            previous = self.window.nodes.get(message_node_id(msg, topic))
            status = NodeStatus.from_message(msg, now, topic, previous)
        except MalformedMessage as exc:
            LOGGER.warning("discarding message on %s: %s", topic or "<direct>", exc)
            return []
        self.window.update(status)
        return self._publications(now)

    def assess(self, provider: str, nodes: Sequence[NodeStatus], now: datetime) -> ProviderAssessment:
        raw_scope = classify(nodes, self.classifier.thresholds)
        scope = self.classifier.resolve(provider, raw_scope, now)
        confidence = group_confidence(nodes)
        return ProviderAssessment(
            provider=provider,
            scope=scope,
            raw_scope=raw_scope,
            severity=severity(scope, confidence, len(nodes)),
            confidence=confidence,
            impacted_count=len(nodes),
            affected_states=tuple(sorted(known_states(nodes))),
        )

    def assess_all(self, now: datetime) -> Dict[str, ProviderAssessment]:
        groups = self.window.impacted_by_provider(now)
        for provider in list(self.classifier.states):
            if provider not in groups:
                self.classifier.forget(provider)
        return {
            provider: self.assess(provider, nodes, now)
            for provider, nodes in sorted(groups.items())
        }

    def _publications(self, now: datetime) -> List[Publication]:
        ts = to_iso(now)
        assessments = self.assess_all(now)
        publications: List[Publication] = []

        for provider, assessment in assessments.items():
            view = {"provider": provider, **assessment.to_summary()}
            if self._last_scope_views.get(provider) == view:
                continue
            self._last_scope_views[provider] = view
            payload = {"type": SCOPE_EVENT, "detector": AGGREGATOR_NAME, **view, "ts": ts}
            publications.append(Publication(f"{self.config.scope_base}/{provider}", payload))
            LOGGER.info(
                "%s scope=%s (raw %s) severity=%s confidence=%.2f impacted=%d",
                provider,
                assessment.scope,
                assessment.raw_scope,
                assessment.severity,
                assessment.confidence,
                assessment.impacted_count,
            )

        for provider in sorted(set(self._last_scope_views) - set(assessments)):
            del self._last_scope_views[provider]
            publications.append(Publication(f"{self.config.scope_base}/{provider}", None))
            LOGGER.info("%s no longer impacted; scope cleared", provider)

        summary = {
            "type": SUMMARY_EVENT,
            "detector": AGGREGATOR_NAME,
            "ts": ts,
            "providers": {provider: a.to_summary() for provider, a in assessments.items()},
        }
        publications.append(Publication(self.config.summary_topic, summary))
        return publications


def publish_all(transport: RedisTransport, publications: Sequence[Publication]) -> int:
    """Send publications; broker errors are logged and the rest still go out."""

    sent = 0
    for publication in publications:
        try:
            if publication.payload is None:
                transport.clear_retained(publication.topic)
            else:
                transport.publish(publication.topic, publication.payload, retain=publication.retain)
        except TransportError as exc:
            LOGGER.warning("%s", exc)
            continue
        sent += 1
    return sent
