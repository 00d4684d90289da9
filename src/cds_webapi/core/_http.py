# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Transport used to put encoded requests on the wire.

The protocol layer never performs I/O itself: it hands a method, absolute URL,
headers and body to a :class:`Transport` and receives a :class:`RawResponse`.
:class:`RequestsTransport` is the default implementation, a wrapper around the
requests library with timeout defaults, optional session reuse and retries on
network errors for idempotent (GET) requests only.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Mapping, Optional, Protocol, runtime_checkable

import requests


@dataclass(frozen=True)
class RawResponse:
    """Undecoded HTTP response as returned by a transport."""

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for k, v in self.headers.items():
            if k.lower() == wanted:
                return v
        return None


@runtime_checkable
class Transport(Protocol):
    """Sends one HTTP request and returns the raw response."""

    def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes],
    ) -> RawResponse:
        ...


class RequestsTransport:
    """
    requests-based transport with timeout handling and optional session support.

    :param retries: Maximum attempts for GET requests on network errors. Default is 5.
    :type retries: :class:`int` | None
    :param backoff: Base delay in seconds between retry attempts. Default is 0.5.
    :type backoff: :class:`float` | None
    :param timeout: Default request timeout in seconds. If None, uses per-method defaults.
    :type timeout: :class:`float` | None
    :param session: Optional requests.Session for connection pooling.
    :type session: :class:`requests.Session` | None
    """

    def __init__(
        self,
        retries: Optional[int] = None,
        backoff: Optional[float] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.max_attempts = retries if retries is not None else 5
        self.base_delay = backoff if backoff is not None else 0.5
        self.default_timeout: Optional[float] = timeout
        self._session = session

    def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes],
    ) -> RawResponse:
        """
        Execute an HTTP request.

        Applies default timeouts based on HTTP method (120s for writes and batches,
        10s for reads). Network errors are retried with exponential backoff only for
        GET; writes are never replayed because the server may already have applied them.

        :raises requests.exceptions.RequestException: If the request fails.
        """
        m = (method or "").upper()
        timeout = self.default_timeout
        if timeout is None:
            timeout = 10 if m == "GET" else 120

        attempts = max(1, self.max_attempts) if m == "GET" else 1
        for attempt in range(attempts):
            try:
                r = self._do_request(m, url, headers=dict(headers), data=body, timeout=timeout)
                return RawResponse(status=r.status_code, headers=dict(r.headers), body=r.content or b"")
            except requests.exceptions.RequestException:
                if attempt == attempts - 1:
                    raise
                delay = self.base_delay * (2**attempt)
                time.sleep(delay)
        raise RuntimeError("Unexpected end of retry loop")

    def _do_request(self, method: str, url: str, **kwargs) -> requests.Response:
        if self._session is not None:
            return self._session.request(method, url, **kwargs)
        return requests.request(method, url, **kwargs)

    def close(self) -> None:
        """Close the session, if any. Safe to call multiple times."""
        if self._session is not None:
            self._session.close()
            self._session = None
