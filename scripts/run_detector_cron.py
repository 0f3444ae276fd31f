#!/usr/bin/env python3
"""Cron-safe detector runner.

Serializes detector runs with a file lock (the persisted hysteresis state
is a read-modify-write), logs to a rotating file and keeps the latest
run's events in data/latest/carrier-outage.json.
"""

from __future__ import annotations

import argparse
import json
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Sequence

import fcntl

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from observers.carrier_outage import observer  # noqa: E402
from observers.carrier_outage.config import ConfigError, load_config, resolve_config_path  # noqa: E402
from observers.carrier_outage.state_store import JsonFileStateStore  # noqa: E402
from observers.common.log import setup_logger  # noqa: E402
from observers.common.timeutil import to_iso, utc_now  # noqa: E402
from observers.common.transport import RedisTransport  # noqa: E402

LOG_FILE = REPO_ROOT / "logs" / "carrier-outage.log"
LOCK_FILE = REPO_ROOT / "state" / "carrier_outage.lock"
LATEST_FILE = REPO_ROOT / "data" / "latest" / "carrier-outage.json"


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the carrier outage detector once, under a lock")
    parser.add_argument("--config", help="Detector config JSON")
    return parser.parse_args(argv)


@contextmanager
def _lock_execution(path: Path):
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise SystemExit("carrier outage detector already active")
        yield


def _write_latest(result: observer.RunResult, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "last_run_utc": to_iso(utc_now()),
        "control_ok": result.control_ok,
        "events": result.events,
        "node_status": result.node_status,
    }
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    logger = setup_logger("observers", LOG_FILE, stream=sys.stdout)

    try:
        with _lock_execution(LOCK_FILE):
            config = load_config(resolve_config_path(args.config))
            store = JsonFileStateStore(config.state_path)
            transport = RedisTransport(config.transport.url) if config.transport.enabled else None
            try:
                result = observer.run(config, store, now=utc_now(), transport=transport)
            finally:
                if transport is not None:
                    transport.close()
            _write_latest(result, LATEST_FILE)
            logger.info(
                "detector run completed: %d event(s), %d published",
                len(result.events),
                result.published,
            )
    except ConfigError as exc:
        logger.error("fatal: %s", exc)
        return 1
    except Exception as exc:  # noqa: BLE001
        logger.exception("detector run failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
