"""Where the detector keeps per-provider hysteresis state between runs."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from observers.carrier_outage.models import PersistedProviderState

LOGGER = logging.getLogger(__name__)


class StateStore:
    """Keyed by provider name. Only the detector reads or writes it."""

    def get(self, provider: str) -> PersistedProviderState:
        raise NotImplementedError

    def put(self, provider: str, state: PersistedProviderState) -> None:
        raise NotImplementedError

    def save(self) -> None:
        """Flush pending writes. No-op for stores without durable backing."""


class MemoryStateStore(StateStore):
    def __init__(self, initial: Dict[str, PersistedProviderState] | None = None):
        self.providers: Dict[str, PersistedProviderState] = dict(initial or {})

    def get(self, provider: str) -> PersistedProviderState:
        return self.providers.get(provider, PersistedProviderState())

    def put(self, provider: str, state: PersistedProviderState) -> None:
        self.providers[provider] = state


class JsonFileStateStore(MemoryStateStore):
    """``{"providers": {name: {state, failStreak, okStreak, firstSeen}}}`` on disk.

    The file is read once on construction and rewritten by ``save()``
    through a temporary file so a crashed run never leaves half a document.
    """

    def __init__(self, path: Path):
        self.path = path
        super().__init__(self._load(path))

    @staticmethod
    def _load(path: Path) -> Dict[str, PersistedProviderState]:
        if not path.exists():
            return {}
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOGGER.warning("state file %s unreadable (%s); starting fresh", path, exc)
            return {}
        providers = payload.get("providers") if isinstance(payload, dict) else None
        if not isinstance(providers, dict):
            LOGGER.warning("state file %s has no providers map; starting fresh", path)
            return {}
        return {
            str(name): PersistedProviderState.from_dict(entry)
            for name, entry in providers.items()
        }

    def _document(self) -> Dict[str, Any]:
        return {"providers": {name: state.to_dict() for name, state in sorted(self.providers.items())}}

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(json.dumps(self._document(), ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
        os.replace(tmp_path, self.path)
