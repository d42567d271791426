"""Connectivity probe against the provider's HTTP API."""
from __future__ import annotations

import http.client
import logging
import socket
import threading
import urllib.error
import urllib.request
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .. import __version__

LOGGER = logging.getLogger(__name__)


class ProbeStatus(str, Enum):
    """Interpretation of a probe response."""

    HEALTHY = "healthy"
    UNAUTHORIZED = "unauthorized"
    OFFLINE = "offline"
    UNEXPECTED = "unexpected"


@dataclass(slots=True, frozen=True)
class ProbeOutcome:
    """Result of one probe request."""

    status: ProbeStatus
    http_status: int | None = None
    detail: str | None = None


class ApiProbe(Protocol):
    """A single, bounded, advisory check of the remote API."""

    def check(self, secret: str) -> ProbeOutcome:
        """Probe the API with *secret*."""


def classify_status(code: int) -> ProbeStatus:
    """Map an HTTP status code onto a :class:`ProbeStatus`."""
    if code == 200:
        return ProbeStatus.HEALTHY
    if code == 401:
        return ProbeStatus.UNAUTHORIZED
    return ProbeStatus.UNEXPECTED


@dataclass(slots=True)
class HttpApiProbe:
    """Issue ``GET <base_url>/models`` with a bearer token."""

    base_url: str
    connect_timeout: float = 5.0
    total_timeout: float = 10.0
    path: str = "/models"

    @property
    def url(self) -> str:
        """Full probe URL."""
        return self.base_url.rstrip("/") + self.path

    def check(self, secret: str) -> ProbeOutcome:
        """Return the probe outcome; network failures map to ``OFFLINE``.

        ``connect_timeout`` bounds each socket operation and ``total_timeout``
        bounds the whole request. The request runs on a daemon thread that
        is abandoned once the deadline passes.
        """
        request = urllib.request.Request(
            self.url,
            headers={
                "Authorization": f"Bearer {secret}",
                "Accept": "application/json",
                "User-Agent": f"straylight/{__version__}",
            },
            method="GET",
        )
        outcomes: list[ProbeOutcome] = []
        failures: list[Exception] = []

        def _worker() -> None:
            try:
                outcomes.append(self._send(request))
            except Exception as exc:  # re-raised on the calling thread
                failures.append(exc)

        worker = threading.Thread(target=_worker, name="straylight-probe", daemon=True)
        worker.start()
        worker.join(timeout=self.total_timeout)
        if failures:
            raise failures[0]
        if not outcomes:
            LOGGER.debug("probe %s exceeded %.1fs", self.url, self.total_timeout)
            return ProbeOutcome(
                ProbeStatus.OFFLINE,
                detail=f"no response within {self.total_timeout:.1f}s",
            )
        return outcomes[0]

    def _send(self, request: urllib.request.Request) -> ProbeOutcome:
        try:
            with urllib.request.urlopen(request, timeout=self.connect_timeout) as response:
                code = int(response.status)
        except urllib.error.HTTPError as exc:
            code = int(exc.code)
            exc.close()
        except (urllib.error.URLError, socket.timeout, TimeoutError, ConnectionError) as exc:
            LOGGER.debug("probe %s failed: %s", self.url, exc)
            return ProbeOutcome(ProbeStatus.OFFLINE, detail=str(exc))
        except http.client.HTTPException as exc:
            return ProbeOutcome(ProbeStatus.UNEXPECTED, detail=f"malformed response: {exc!r}")
        return ProbeOutcome(classify_status(code), http_status=code)

__all__ = [
    "ApiProbe",
    "HttpApiProbe",
    "ProbeOutcome",
    "ProbeStatus",
    "classify_status",
]
