from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from observers.carrier_outage_aggregator.classifier import ScopeClassifier, ScopeThresholds, classify
from observers.carrier_outage_aggregator.models import LOCAL, NATIONWIDE, OFFLINE, STATE, NodeStatus

NOW = datetime(2099, 1, 1, 12, 0, tzinfo=timezone.utc)


def _node(node_id: str, state: str | None) -> NodeStatus:
    return NodeStatus(
        node_id=node_id,
        provider_hint="verizon",
        state=state,
        region=None,
        region_weight=1.0,
        control_ok=False,
        presence=OFFLINE,
        ts=NOW,
    )


def test_five_distinct_states_is_nationwide() -> None:
    nodes = [_node(f"n{i}", st) for i, st in enumerate(["CA", "TX", "NY", "FL", "WA"])]
    assert classify(nodes, ScopeThresholds()) == NATIONWIDE


def test_three_states_is_nationwide_regardless_of_count() -> None:
    nodes = [_node("a", "CA"), _node("b", "TX"), _node("c", "NY")]
    assert classify(nodes, ScopeThresholds()) == NATIONWIDE


def test_five_nodes_without_states_is_nationwide() -> None:
    nodes = [_node(f"n{i}", None) for i in range(5)]
    assert classify(nodes, ScopeThresholds()) == NATIONWIDE


def test_two_in_one_state_is_state() -> None:
    nodes = [_node("a", "NY"), _node("b", "NY"), _node("c", "NJ")]
    assert classify(nodes, ScopeThresholds()) == STATE


def test_unknown_states_do_not_count_toward_state_scope() -> None:
    nodes = [_node("a", None), _node("b", None), _node("c", "NY")]
    assert classify(nodes, ScopeThresholds()) == LOCAL


def test_single_node_is_local() -> None:
    assert classify([_node("a", "NY")], ScopeThresholds()) == LOCAL


def test_escalation_waits_for_debounce() -> None:
    classifier = ScopeClassifier(ScopeThresholds(debounce_ms=90_000))

    assert classifier.resolve("verizon", LOCAL, NOW) == LOCAL
    assert classifier.resolve("verizon", NATIONWIDE, NOW + timedelta(seconds=30)) == LOCAL
    assert classifier.resolve("verizon", NATIONWIDE, NOW + timedelta(seconds=119)) == LOCAL
    assert classifier.resolve("verizon", NATIONWIDE, NOW + timedelta(seconds=120)) == NATIONWIDE
    assert classifier.states["verizon"].since == NOW + timedelta(seconds=120)
    assert classifier.states["verizon"].pending is None


def test_long_stable_local_does_not_escalate_on_first_wide_reading() -> None:
    classifier = ScopeClassifier(ScopeThresholds(debounce_ms=90_000))
    classifier.resolve("verizon", LOCAL, NOW)
    classifier.resolve("verizon", LOCAL, NOW + timedelta(minutes=4))

    assert classifier.resolve("verizon", NATIONWIDE, NOW + timedelta(minutes=5)) == LOCAL


def test_falling_back_restarts_the_pending_escalation() -> None:
    classifier = ScopeClassifier(ScopeThresholds(debounce_ms=90_000))
    classifier.resolve("verizon", LOCAL, NOW)
    classifier.resolve("verizon", NATIONWIDE, NOW + timedelta(seconds=10))
    assert classifier.resolve("verizon", LOCAL, NOW + timedelta(seconds=50)) == LOCAL

    assert classifier.resolve("verizon", NATIONWIDE, NOW + timedelta(seconds=60)) == LOCAL
    assert classifier.resolve("verizon", NATIONWIDE, NOW + timedelta(seconds=149)) == LOCAL
    assert classifier.resolve("verizon", NATIONWIDE, NOW + timedelta(seconds=150)) == NATIONWIDE


def test_wobbling_escalation_settles_on_lowest_raw_scope() -> None:
    classifier = ScopeClassifier(ScopeThresholds(debounce_ms=90_000))
    classifier.resolve("verizon", LOCAL, NOW)
    classifier.resolve("verizon", NATIONWIDE, NOW + timedelta(seconds=10))
    classifier.resolve("verizon", STATE, NOW + timedelta(seconds=50))

    assert classifier.resolve("verizon", NATIONWIDE, NOW + timedelta(seconds=100)) == STATE


def test_first_sighting_starts_local() -> None:
    classifier = ScopeClassifier()
    assert classifier.resolve("att", NATIONWIDE, NOW) == LOCAL
    assert classifier.resolve("att", NATIONWIDE, NOW + timedelta(seconds=91)) == NATIONWIDE


def test_de_escalation_is_immediate() -> None:
    classifier = ScopeClassifier(ScopeThresholds(debounce_ms=90_000))
    classifier.resolve("verizon", NATIONWIDE, NOW)
    assert classifier.resolve("verizon", NATIONWIDE, NOW + timedelta(seconds=100)) == NATIONWIDE

    assert classifier.resolve("verizon", LOCAL, NOW + timedelta(seconds=101)) == LOCAL
    assert classifier.states["verizon"].scope == LOCAL


def test_state_then_nationwide_restarts_debounce() -> None:
    classifier = ScopeClassifier(ScopeThresholds(debounce_ms=60_000))
    classifier.resolve("verizon", LOCAL, NOW)
    assert classifier.resolve("verizon", STATE, NOW + timedelta(seconds=10)) == LOCAL
    assert classifier.resolve("verizon", STATE, NOW + timedelta(seconds=70)) == STATE
    assert classifier.resolve("verizon", NATIONWIDE, NOW + timedelta(seconds=80)) == STATE
    assert classifier.resolve("verizon", NATIONWIDE, NOW + timedelta(seconds=139)) == STATE
    assert classifier.resolve("verizon", NATIONWIDE, NOW + timedelta(seconds=140)) == NATIONWIDE


def test_forget_drops_provider_state() -> None:
    classifier = ScopeClassifier()
    classifier.resolve("verizon", LOCAL, NOW)
    classifier.forget("verizon")
    classifier.forget("never-seen")
    assert classifier.states == {}
