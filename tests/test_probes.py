from __future__ import annotations

import socket
import sys
import threading
from pathlib import Path
from urllib.error import HTTPError, URLError

import dns.exception
import dns.resolver

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from observers.carrier_outage import probes
from observers.carrier_outage.models import ProviderDefinition, Signal


class _FakeResponse:
    def __init__(self, status: int):
        self.status = status
        self.read_sizes: list[int] = []

    def read(self, size: int) -> bytes:
        self.read_sizes.append(size)
        return b"ok"

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_http_probe_success_reads_limited_body(monkeypatch) -> None:
    response = _FakeResponse(204)
    seen = {}

    def _fake_urlopen(request, timeout):
        seen["timeout"] = timeout
        seen["agent"] = request.get_header("User-agent")
        return response

    monkeypatch.setattr(probes, "urlopen", _fake_urlopen)
    signal = probes.http_probe("https://example.com/", 7.0)

    assert signal.ok is True
    assert signal.status == 204
    assert signal.name == "probe:https://example.com/"
    assert response.read_sizes == [probes.MAX_BODY_BYTES]
    assert seen == {"timeout": 7.0, "agent": probes.USER_AGENT}


def test_http_probe_error_status_is_a_failed_signal(monkeypatch) -> None:
    def _raise(request, timeout):
        raise HTTPError(request.full_url, 503, "unavailable", {}, None)

    monkeypatch.setattr(probes, "urlopen", _raise)
    signal = probes.http_probe("https://example.com/", 1.0)

    assert signal.ok is False
    assert signal.status == 503
    assert signal.detail == "http 503"


def test_http_probe_timeout_is_a_failed_signal(monkeypatch) -> None:
    def _raise(request, timeout):
        raise URLError(socket.timeout("timed out"))

    monkeypatch.setattr(probes, "urlopen", _raise)
    signal = probes.http_probe("https://example.com/", 1.0)

    assert signal.ok is False
    assert signal.detail == "timeout"


def test_http_probe_connection_refused(monkeypatch) -> None:
    def _raise(request, timeout):
        raise URLError(ConnectionRefusedError(111, "Connection refused"))

    monkeypatch.setattr(probes, "urlopen", _raise)
    signal = probes.http_probe("https://example.com/", 1.0)

    assert signal.ok is False
    assert "refused" in signal.detail


class _FakeRecord:
    def __init__(self, text: str):
        self.text = text

    def to_text(self) -> str:
        return self.text


class _FakeResolver:
    def __init__(self, outcome):
        self.outcome = outcome
        self.timeout = None
        self.lifetime = None
        self.calls: list[tuple] = []

    def resolve(self, host, record_type, lifetime=None):
        self.calls.append((host, record_type, lifetime))
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


def test_dns_probe_answer() -> None:
    resolver = _FakeResolver([_FakeRecord("93.184.216.34")])
    signal = probes.dns_probe("example.com", 7.0, resolver=resolver)

    assert signal.ok is True
    assert signal.detail == "A=93.184.216.34"
    assert resolver.calls == [("example.com", "A", probes.DNS_TIMEOUT_CAP_S)]


def test_dns_probe_failures_never_raise() -> None:
    cases = [
        (dns.resolver.NXDOMAIN(), "NXDOMAIN"),
        (dns.resolver.NoAnswer(), "no_records"),
        (dns.exception.Timeout(), "timeout"),
        (dns.resolver.NoNameservers(), "no_nameservers"),
    ]
    for error, detail in cases:
        signal = probes.dns_probe("example.invalid", 2.0, resolver=_FakeResolver(error))
        assert signal.ok is False
        assert signal.detail == detail


def test_provider_signals_order_and_dns_timeout_cap() -> None:
    calls: list[tuple] = []

    def _http(url, timeout_s):
        calls.append(("http", url, timeout_s))
        return Signal(name=f"probe:{url}", ok=True, latency_ms=1.0)

    def _dns(host, timeout_s):
        calls.append(("dns", host, timeout_s))
        return Signal(name=f"dns:{host}", ok=False, latency_ms=1.0)

    provider = ProviderDefinition(name="att", type="mobile", probe_urls=["https://att.com/"], dns_hosts=["att.com"])
    signals = probes.provider_signals(provider, 7.0, http=_http, dns_lookup=_dns)

    assert [s.name for s in signals] == ["dns:att.com", "probe:https://att.com/"]
    assert calls == [("dns", "att.com", 5.0), ("http", "https://att.com/", 7.0)]


def test_control_signals_are_renamed() -> None:
    def _http(url, timeout_s):
        return Signal(name=f"probe:{url}", ok=url.endswith("up"), latency_ms=3.0, status=200)

    signals = probes.control_signals(["https://a/up", "https://b/down"], 2.0, probe=_http)
    assert [(s.name, s.ok) for s in signals] == [("control:https://a/up", True), ("control:https://b/down", False)]


def _serve_once(reply: bytes) -> tuple[socket.socket, threading.Thread]:
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)

    def _answer() -> None:
        conn, _ = server.accept()
        with conn:
            conn.recv(4096)
            conn.sendall(reply)

    thread = threading.Thread(target=_answer, daemon=True)
    thread.start()
    return server, thread


def test_http_probe_non_http_reply_is_a_failed_signal() -> None:
    server, thread = _serve_once(b"SSH-2.0-OpenSSH\r\n\r\n")
    port = server.getsockname()[1]
    try:
        signal = probes.http_probe(f"http://127.0.0.1:{port}/", 2.0)
    finally:
        thread.join(timeout=2.0)
        server.close()

    assert signal.ok is False
    assert signal.status is None
    assert signal.detail == "bad response: BadStatusLine"


def test_http_probe_invalid_url_is_a_failed_signal() -> None:
    signal = probes.http_probe("http://127.0.0.1:notaport/", 1.0)
    assert signal.ok is False


def test_dns_probe_without_resolver_configuration(monkeypatch) -> None:
    def _unconfigured(configure=True):
        raise dns.resolver.NoResolverConfiguration("no nameservers")

    monkeypatch.setattr(probes.dns.resolver, "Resolver", _unconfigured)
    signal = probes.dns_probe("example.com", 2.0)

    assert signal.ok is False
    assert signal.name == "dns:example.com"
    assert signal.detail == "no nameservers"


def test_http_probe_unparseable_url_is_a_failed_signal() -> None:
    signal = probes.http_probe("not a url", 1.0)
    assert signal.ok is False
    assert signal.name == "probe:not a url"
