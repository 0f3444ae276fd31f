"""HTTP and DNS reachability probes.

Every probe returns a ``Signal``. Network trouble of any kind is a failed
signal, never an exception, and each probe carries its own timeout.
"""

from __future__ import annotations

import logging
import socket
import time
from http.client import HTTPException
from typing import Callable, List, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

import dns.exception
import dns.resolver

from observers.carrier_outage.models import ProviderDefinition, Signal

LOGGER = logging.getLogger(__name__)

USER_AGENT = "carrier-outage-observer/1.0"
ACCEPT = "text/html,application/json;q=0.9,*/*;q=0.8"
MAX_BODY_BYTES = 8192
DNS_TIMEOUT_CAP_S = 5.0

HttpProbe = Callable[[str, float], Signal]
DnsProbe = Callable[[str, float], Signal]


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return True
    reason = getattr(exc, "reason", None)
    return isinstance(reason, (socket.timeout, TimeoutError))


def http_probe(url: str, timeout_s: float, *, name: Optional[str] = None) -> Signal:
    """GET ``url``; 2xx and 3xx count as reachable.

    Only the first few KiB of the body are read, enough for slow servers to
    finish the exchange without pulling whole pages.
    """

    label = name or f"probe:{url}"
    start = time.perf_counter()
    try:
        request = Request(url, method="GET", headers={"User-Agent": USER_AGENT, "Accept": ACCEPT})
        with urlopen(request, timeout=timeout_s) as response:  # nosec - public reachability check
            response.read(MAX_BODY_BYTES)
            status = response.status
    except HTTPError as exc:
        LOGGER.debug("%s -> http %s", label, exc.code)
        return Signal(name=label, ok=False, latency_ms=_elapsed_ms(start), detail=f"http {exc.code}", status=exc.code)
    except (URLError, OSError, ValueError) as exc:
        detail = "timeout" if _is_timeout(exc) else str(getattr(exc, "reason", exc))
        LOGGER.debug("%s -> %s", label, detail)
        return Signal(name=label, ok=False, latency_ms=_elapsed_ms(start), detail=detail)
    except HTTPException as exc:
        # peer answered, but not with HTTP
        detail = f"bad response: {type(exc).__name__}"
        LOGGER.debug("%s -> %s", label, detail)
        return Signal(name=label, ok=False, latency_ms=_elapsed_ms(start), detail=detail)

    ok = 200 <= status < 400
    return Signal(
        name=label,
        ok=ok,
        latency_ms=_elapsed_ms(start),
        detail=None if ok else f"http {status}",
        status=status,
    )


def dns_probe(host: str, timeout_s: float, *, resolver: Optional[dns.resolver.Resolver] = None) -> Signal:
    """Resolve an A record for ``host`` within ``timeout_s``."""

    label = f"dns:{host}"
    timeout_s = min(timeout_s, DNS_TIMEOUT_CAP_S)

    start = time.perf_counter()
    try:
        if resolver is None:
            # raises NoResolverConfiguration on hosts without a usable resolv.conf
            resolver = dns.resolver.Resolver(configure=True)
        resolver.timeout = timeout_s
        resolver.lifetime = timeout_s
        answer = resolver.resolve(host, "A", lifetime=timeout_s)
    except dns.resolver.NXDOMAIN:
        detail = "NXDOMAIN"
    except dns.resolver.NoAnswer:
        detail = "no_records"
    except dns.exception.Timeout:
        detail = "timeout"
    except dns.resolver.NoNameservers:
        detail = "no_nameservers"
    except dns.exception.DNSException as exc:
        detail = str(exc) or type(exc).__name__
    else:
        records = [record.to_text() for record in answer]
        if records:
            return Signal(name=label, ok=True, latency_ms=_elapsed_ms(start), detail=f"A={records[0]}")
        detail = "no_records"

    LOGGER.debug("%s -> %s", label, detail)
    return Signal(name=label, ok=False, latency_ms=_elapsed_ms(start), detail=detail)


def control_signals(urls: Sequence[str], timeout_s: float, probe: HttpProbe = http_probe) -> List[Signal]:
    signals: List[Signal] = []
    for url in urls:
        result = probe(url, timeout_s)
        signals.append(Signal(
            name=f"control:{url}",
            ok=result.ok,
            latency_ms=result.latency_ms,
            detail=result.detail,
            status=result.status,
        ))
    return signals


def provider_signals(
    provider: ProviderDefinition,
    timeout_s: float,
    *,
    http: HttpProbe = http_probe,
    dns_lookup: DnsProbe = dns_probe,
) -> List[Signal]:
    """DNS checks first, then HTTP probes, one after the other."""

    signals: List[Signal] = []
    for host in provider.dns_hosts:
        signals.append(dns_lookup(host, min(timeout_s, DNS_TIMEOUT_CAP_S)))
    for url in provider.probe_urls:
        signals.append(http(url, timeout_s))
    return signals
