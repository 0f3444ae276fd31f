from __future__ import annotations

import json
import sys
from pathlib import Path

import fcntl
import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from observers.carrier_outage.models import Signal
from scripts import run_detector_cron


def _offline_probe(target, timeout_s):
    return Signal(name=f"probe:{target}", ok=True, latency_ms=1.0)


def _patch_paths(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(run_detector_cron, "LOG_FILE", tmp_path / "logs" / "carrier-outage.log")
    monkeypatch.setattr(run_detector_cron, "LOCK_FILE", tmp_path / "state" / "carrier_outage.lock")
    monkeypatch.setattr(run_detector_cron, "LATEST_FILE", tmp_path / "data" / "latest" / "carrier-outage.json")
    monkeypatch.setattr(run_detector_cron.observer, "http_probe", _offline_probe)


def _write_config(tmp_path: Path) -> Path:
    (tmp_path / "cloud.json").write_text(
        json.dumps([{"name": "aws", "type": "cloud", "probes": ["https://aws.test/"]}]),
        encoding="utf-8",
    )
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"providers": {"cloud": "cloud.json"}}), encoding="utf-8")
    return path


def test_cron_run_writes_latest_and_state(tmp_path, monkeypatch) -> None:
    _patch_paths(tmp_path, monkeypatch)
    config_path = _write_config(tmp_path)

    assert run_detector_cron.main(["--config", str(config_path)]) == 0

    latest = json.loads((tmp_path / "data" / "latest" / "carrier-outage.json").read_text(encoding="utf-8"))
    assert latest["control_ok"] is True
    assert latest["events"][0]["type"] == "carrier_outage_heartbeat"
    state = json.loads((tmp_path / ".state.json").read_text(encoding="utf-8"))
    assert state["providers"]["aws"]["okStreak"] == 1


def test_cron_run_fails_on_bad_config(tmp_path, monkeypatch) -> None:
    _patch_paths(tmp_path, monkeypatch)
    config_path = tmp_path / "config.json"
    config_path.write_text("not json", encoding="utf-8")

    assert run_detector_cron.main(["--config", str(config_path)]) == 1


def test_cron_refuses_concurrent_run(tmp_path, monkeypatch) -> None:
    _patch_paths(tmp_path, monkeypatch)
    lock_path = tmp_path / "state" / "carrier_outage.lock"
    lock_path.parent.mkdir(parents=True)
    with lock_path.open("w", encoding="utf-8") as handle:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        with pytest.raises(SystemExit):
            run_detector_cron.main(["--config", str(_write_config(tmp_path))])
