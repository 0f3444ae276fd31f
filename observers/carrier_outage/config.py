"""Detector configuration.

Parsed once from JSON into frozen dataclasses and handed to the run; no
component looks configuration up on its own.
"""

from __future__ import annotations

import json
import logging
import os
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from observers.carrier_outage.models import PROVIDER_TYPES, ProviderDefinition

LOGGER = logging.getLogger(__name__)

MODULE_DIR = Path(__file__).resolve().parent
CONFIG_ENV = "CARRIER_OUTAGE_CONFIG"


class ConfigError(ValueError):
    """Configuration the detector cannot run without."""


@dataclass(frozen=True)
class NodeConfig:
    node_id: str
    provider_hint: str = "unknown"
    state: Optional[str] = None
    region_weight: float = 1.0


@dataclass(frozen=True)
class TransportConfig:
    enabled: bool = False
    url: str = "redis://127.0.0.1:6379/0"
    events_base: str = "carrier/events"
    local_base: str = "carrier/local"


@dataclass(frozen=True)
class DetectorConfig:
    base_dir: Path
    region: str = "default"
    timeout_ms: int = 7000
    fail_for_major: int = 3
    ok_for_recovery: int = 5
    control_probes: Tuple[str, ...] = ()
    provider_files: Tuple[Tuple[str, Path], ...] = ()
    emit_json: bool = True
    state_file: Optional[Path] = None
    node: NodeConfig = field(default_factory=lambda: NodeConfig(node_id=socket.gethostname()))
    transport: TransportConfig = field(default_factory=TransportConfig)

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def state_path(self) -> Path:
        return self.state_file or self.base_dir / ".state.json"


def resolve_config_path(explicit: Optional[str] = None) -> Path:
    if explicit:
        return Path(explicit)
    env_path = os.getenv(CONFIG_ENV)
    if env_path:
        return Path(env_path)
    local = MODULE_DIR / "config.json"
    if local.exists():
        return local
    return MODULE_DIR / "config.example.json"


def _resolve(base_dir: Path, value: Any) -> Optional[Path]:
    if not value:
        return None
    path = Path(str(value))
    return path if path.is_absolute() else base_dir / path


def _positive_int(payload: Dict[str, Any], key: str, default: int) -> int:
    value = payload.get(key, default)
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from exc
    if number < 1:
        raise ConfigError(f"{key} must be >= 1, got {number}")
    return number


def parse_config(payload: Any, base_dir: Path) -> DetectorConfig:
    if not isinstance(payload, dict):
        raise ConfigError("config root must be a JSON object")

    providers = payload.get("providers") or {}
    if not isinstance(providers, dict):
        raise ConfigError("providers must map a provider type to a list file")
    provider_files: List[Tuple[str, Path]] = []
    for kind, raw_path in providers.items():
        path = _resolve(base_dir, raw_path)
        if path is not None:
            provider_files.append((str(kind), path))

    node_payload = payload.get("node") or {}
    transport_payload = payload.get("transport") or {}
    if not isinstance(node_payload, dict) or not isinstance(transport_payload, dict):
        raise ConfigError("node and transport must be JSON objects")
    weight = node_payload.get("regionWeight", 1.0)
    node = NodeConfig(
        node_id=str(node_payload.get("id") or socket.gethostname()),
        provider_hint=str(node_payload.get("providerHint") or "unknown"),
        state=node_payload.get("state") or None,
        region_weight=float(weight) if isinstance(weight, (int, float)) and weight >= 0 else 1.0,
    )

    transport = TransportConfig(
        enabled=bool(transport_payload.get("enabled", False)),
        url=str(transport_payload.get("url", TransportConfig.url)),
        events_base=str(transport_payload.get("eventsBase", TransportConfig.events_base)).rstrip("/"),
        local_base=str(transport_payload.get("localBase", TransportConfig.local_base)).rstrip("/"),
    )

    control = payload.get("controlProbes") or []
    if not isinstance(control, list):
        raise ConfigError("controlProbes must be a list of URLs")

    return DetectorConfig(
        base_dir=base_dir,
        region=str(payload.get("region") or "default"),
        timeout_ms=_positive_int(payload, "timeoutMs", 7000),
        fail_for_major=_positive_int(payload, "consecutiveFailForMajor", 3),
        ok_for_recovery=_positive_int(payload, "consecutiveOkForRecovery", 5),
        control_probes=tuple(str(url) for url in control),
        provider_files=tuple(provider_files),
        emit_json=bool(payload.get("emitJson", True)),
        state_file=_resolve(base_dir, payload.get("stateFile")),
        node=node,
        transport=transport,
    )


def load_config(path: Path) -> DetectorConfig:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ConfigError(f"cannot read config {path}: {exc}") from exc
    return parse_config(payload, path.resolve().parent)


def _provider_from_entry(entry: Any, default_type: str) -> Optional[ProviderDefinition]:
    if not isinstance(entry, dict) or not entry.get("name"):
        return None
    probes = entry.get("probes", [])
    hosts = entry.get("dns", [])
    if not isinstance(probes, list) or not isinstance(hosts, list):
        return None
    kind = str(entry.get("type") or default_type)
    return ProviderDefinition(
        name=str(entry["name"]),
        type=kind,
        probe_urls=[str(url) for url in probes],
        dns_hosts=[str(host) for host in hosts],
    )


def load_providers(config: DetectorConfig) -> List[ProviderDefinition]:
    """Read every provider list; unreadable lists and entries are skipped.

    Raises ``ConfigError`` when not a single list could be loaded.
    """

    providers: List[ProviderDefinition] = []
    lists_loaded = 0
    for kind, path in config.provider_files:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOGGER.warning("skipping %s provider list %s: %s", kind, path, exc)
            continue
        if not isinstance(payload, list):
            LOGGER.warning("skipping %s provider list %s: not a JSON list", kind, path)
            continue
        lists_loaded += 1
        default_type = kind if kind in PROVIDER_TYPES else "cloud"
        for entry in payload:
            provider = _provider_from_entry(entry, default_type)
            if provider is None:
                LOGGER.warning("skipping malformed provider entry in %s: %r", path, entry)
                continue
            providers.append(provider)

    if lists_loaded == 0:
        raise ConfigError("no provider lists could be loaded")
    return providers
