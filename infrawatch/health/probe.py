"""External reachability probes run from our own network position.

Supports: HTTP(S) GET (self-signed certificates accepted) and raw TCP connect.
"""

from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


@dataclass
class ProbeResult:
    reachable: bool
    latency_ms: float
    error: str | None = None


def run_http_probe(
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.BaseTransport | None = None,
) -> ProbeResult:
    """GET ``url``; 2xx and 3xx count as reachable."""
    t0 = time.perf_counter()
    try:
        with httpx.Client(timeout=timeout, verify=False, transport=transport) as client:
            resp = client.get(url)
        latency = (time.perf_counter() - t0) * 1000
    except httpx.InvalidURL as e:
        return ProbeResult(False, 0.0, f"invalid URL: {e}")
    except httpx.HTTPError as e:
        latency = (time.perf_counter() - t0) * 1000
        return ProbeResult(False, round(latency, 1), f"connection failed: {type(e).__name__}: {e}")

    if 200 <= resp.status_code < 400:
        return ProbeResult(True, round(latency, 1))
    return ProbeResult(False, round(latency, 1), f"HTTP {resp.status_code}")


def run_tcp_probe(address: str, timeout: float = DEFAULT_TIMEOUT) -> ProbeResult:
    """Raw TCP connect to ``host:port``."""
    t0 = time.perf_counter()
    host, _, port = address.rpartition(":")
    try:
        sock = socket.create_connection((host.strip("[]"), int(port)), timeout=timeout)
        sock.close()
    except ValueError:
        return ProbeResult(False, 0.0, f"invalid address: {address}")
    except OSError as e:
        latency = (time.perf_counter() - t0) * 1000
        return ProbeResult(False, round(latency, 1), f"connection failed: {type(e).__name__}: {e}")
    latency = (time.perf_counter() - t0) * 1000
    return ProbeResult(True, round(latency, 1))


def probe(target: str, timeout: float = DEFAULT_TIMEOUT) -> ProbeResult:
    """Dispatch on the target scheme: tcp://host:port, otherwise HTTP(S)."""
    scheme = urlsplit(target).scheme.lower()
    if scheme == "tcp":
        result = run_tcp_probe(target[len("tcp://"):], timeout)
    else:
        result = run_http_probe(target, timeout)
    if not result.reachable:
        logger.debug("Probe %s failed: %s", target, result.error)
    return result
