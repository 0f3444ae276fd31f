"""Aggregator configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Tuple

from observers.carrier_outage.config import ConfigError
from observers.carrier_outage_aggregator.classifier import ScopeThresholds

MODULE_DIR = Path(__file__).resolve().parent
CONFIG_ENV = "CARRIER_AGGREGATOR_CONFIG"


@dataclass(frozen=True)
class AggregatorConfig:
    url: str = "redis://127.0.0.1:6379/0"
    presence_base: str = "carrier/presence"
    local_base: str = "carrier/local"
    scope_base: str = "carrier/scope"
    summary_topic: str = "carrier/summary"
    window_ms: int = 10 * 60 * 1000
    thresholds: ScopeThresholds = field(default_factory=ScopeThresholds)

    @property
    def subscriptions(self) -> Tuple[str, str]:
        return (f"{self.presence_base}/*", f"{self.local_base}/*")


def _non_negative_int(payload: dict, key: str, default: int) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"{key} must be a non-negative integer, got {value!r}")
    return value


def parse_config(payload: Any) -> AggregatorConfig:
    if not isinstance(payload, dict):
        raise ConfigError("aggregator config root must be a JSON object")
    defaults = AggregatorConfig()
    base = ScopeThresholds()
    return AggregatorConfig(
        url=str(payload.get("url", defaults.url)),
        presence_base=str(payload.get("presenceBase", defaults.presence_base)).rstrip("/"),
        local_base=str(payload.get("localBase", defaults.local_base)).rstrip("/"),
        scope_base=str(payload.get("scopeBase", defaults.scope_base)).rstrip("/"),
        summary_topic=str(payload.get("summaryTopic", defaults.summary_topic)),
        window_ms=_non_negative_int(payload, "windowMs", defaults.window_ms),
        thresholds=ScopeThresholds(
            nationwide_states_min=_non_negative_int(payload, "nationwideStatesMin", base.nationwide_states_min),
            nationwide_nodes_min=_non_negative_int(payload, "nationwideNodesMin", base.nationwide_nodes_min),
            state_min=_non_negative_int(payload, "stateMin", base.state_min),
            debounce_ms=_non_negative_int(payload, "debounceMs", base.debounce_ms),
        ),
    )


def load_config(explicit: Optional[str] = None) -> AggregatorConfig:
    """``--config``, then ``$CARRIER_AGGREGATOR_CONFIG``, then config.json, then defaults."""

    path_text = explicit or os.getenv(CONFIG_ENV)
    path = Path(path_text) if path_text else MODULE_DIR / "config.json"
    if not path_text and not path.exists():
        return AggregatorConfig()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ConfigError(f"cannot read aggregator config {path}: {exc}") from exc
    return parse_config(payload)
