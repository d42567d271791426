"""Tests for the HTTP connectivity probe."""
from __future__ import annotations

import http.client
import io
import socket
import threading
import urllib.error
import urllib.request
from email.message import Message

import pytest

from straylight.providers.openrouter import HttpApiProbe, ProbeStatus, classify_status


class _Response:
    def __init__(self, status: int) -> None:
        self.status = status

    def __enter__(self) -> _Response:
        return self

    def __exit__(self, *exc: object) -> None:
        return None


@pytest.mark.parametrize(
    ("code", "status"),
    [
        (200, ProbeStatus.HEALTHY),
        (401, ProbeStatus.UNAUTHORIZED),
        (403, ProbeStatus.UNEXPECTED),
        (500, ProbeStatus.UNEXPECTED),
    ],
)
def test_classify_status(code: int, status: ProbeStatus) -> None:
    """Only 200 and 401 have dedicated meanings."""
    assert classify_status(code) is status


def test_probe_sends_bearer_request(monkeypatch: pytest.MonkeyPatch) -> None:
    """One GET to ``<base_url>/models`` with the key as a bearer token."""
    seen: list[tuple[urllib.request.Request, float]] = []

    def fake_urlopen(request: urllib.request.Request, timeout: float) -> _Response:
        seen.append((request, timeout))
        return _Response(200)

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    probe = HttpApiProbe("https://openrouter.ai/api/v1/", connect_timeout=3.0)

    outcome = probe.check("secret-value-1")

    assert outcome.status is ProbeStatus.HEALTHY
    assert outcome.http_status == 200
    (request, timeout) = seen[0]
    assert request.full_url == "https://openrouter.ai/api/v1/models"
    assert request.get_method() == "GET"
    assert request.get_header("Authorization") == "Bearer secret-value-1"
    assert timeout == 3.0


def test_probe_maps_http_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    """HTTP error statuses are classified rather than raised."""

    def fake_urlopen(request: urllib.request.Request, timeout: float) -> _Response:
        raise urllib.error.HTTPError(request.full_url, 401, "Unauthorized", Message(), io.BytesIO())

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    outcome = HttpApiProbe("https://example.invalid/api").check("secret-value-1")

    assert outcome.status is ProbeStatus.UNAUTHORIZED
    assert outcome.http_status == 401


@pytest.mark.parametrize(
    "error",
    [
        urllib.error.URLError("name resolution failed"),
        socket.timeout("timed out"),
        ConnectionResetError("reset"),
    ],
)
def test_probe_network_failures_are_offline(
    monkeypatch: pytest.MonkeyPatch,
    error: Exception,
) -> None:
    """Connection problems never raise out of the probe."""

    def fake_urlopen(request: urllib.request.Request, timeout: float) -> _Response:
        raise error

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    outcome = HttpApiProbe("https://example.invalid/api").check("secret-value-1")

    assert outcome.status is ProbeStatus.OFFLINE
    assert outcome.http_status is None


def test_total_timeout_bounds_a_stalled_response(monkeypatch: pytest.MonkeyPatch) -> None:
    """A server that never finishes answering is reported offline at the deadline."""
    release = threading.Event()

    def fake_urlopen(request: urllib.request.Request, timeout: float) -> _Response:
        release.wait(5.0)
        return _Response(200)

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    probe = HttpApiProbe("https://example.invalid/api", connect_timeout=5.0, total_timeout=0.05)

    try:
        outcome = probe.check("secret-value-1")
    finally:
        release.set()

    assert outcome.status is ProbeStatus.OFFLINE
    assert outcome.http_status is None
    assert outcome.detail is not None and outcome.detail.startswith("no response within")


def test_malformed_response_is_unexpected(monkeypatch: pytest.MonkeyPatch) -> None:
    """A garbled status line is an unexpected response, not a crash."""

    def fake_urlopen(request: urllib.request.Request, timeout: float) -> _Response:
        raise http.client.BadStatusLine("garbage")

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    outcome = HttpApiProbe("https://example.invalid/api").check("secret-value-1")

    assert outcome.status is ProbeStatus.UNEXPECTED


def test_programming_errors_reach_the_caller(monkeypatch: pytest.MonkeyPatch) -> None:
    """Failures other than network ones are raised on the calling thread."""

    def fake_urlopen(request: urllib.request.Request, timeout: float) -> _Response:
        raise ValueError("unknown url type")

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(ValueError, match="unknown url type"):
        HttpApiProbe("https://example.invalid/api").check("secret-value-1")
