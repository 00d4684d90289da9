# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Structured error types for the CDS Web API client.

Every error raised by the protocol layer derives from :class:`CdsError` and
carries a stable ``code`` plus an optional ``subcode`` (see
:mod:`cds_webapi.core._error_codes`) so callers can branch without parsing
messages.
"""

from __future__ import annotations

import datetime as _dt
import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from ._error_codes import (
    ALL_HTTP_SUBCODES,
    PARAMETER_MISMATCH,
    TRANSIENT_STATUS_CODES,
)


class CdsError(Exception):
    """Base structured error for the CDS Web API client."""

    def __init__(
        self,
        message: str,
        *,
        code: str,
        subcode: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        source: Optional[str] = None,
        is_transient: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.subcode = subcode
        self.status_code = status_code
        self.details = details or {}
        self.source = source or "client"
        self.is_transient = is_transient
        self.timestamp = _dt.datetime.now(_dt.timezone.utc).isoformat().replace("+00:00", "Z")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "subcode": self.subcode,
            "status_code": self.status_code,
            "details": self.details,
            "source": self.source,
            "is_transient": self.is_transient,
            "timestamp": self.timestamp,
        }

    def __repr__(self) -> str:  # pragma: no cover
        return f"{self.__class__.__name__}(code={self.code!r}, subcode={self.subcode!r}, message={self.message!r})"


class ConfigurationError(CdsError):
    """Malformed query, operation or client setup. Caller's fault, never retryable."""

    def __init__(self, message: str, *, subcode: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="configuration_error", subcode=subcode, details=details, source="client")


class ParameterMismatchError(CdsError):
    """The parameters supplied to an action or function do not match its metadata.

    :param operation: Name of the action or function.
    :param unexpected: Parameter names that the metadata does not declare.
    :param missing: Required parameter names that were not supplied.
    """

    def __init__(
        self,
        operation: str,
        *,
        unexpected: Iterable[str] = (),
        missing: Iterable[str] = (),
    ) -> None:
        self.operation = operation
        self.unexpected: List[str] = list(unexpected)
        self.missing: List[str] = list(missing)
        parts = []
        if self.unexpected:
            parts.append("unexpected: " + ", ".join(self.unexpected))
        if self.missing:
            parts.append("missing: " + ", ".join(self.missing))
        message = f"Parameters for '{operation}' do not match its metadata ({'; '.join(parts)})"
        super().__init__(
            message,
            code="parameter_mismatch",
            subcode=PARAMETER_MISMATCH,
            details={"operation": operation, "unexpected": self.unexpected, "missing": self.missing},
            source="client",
        )


class ProtocolDecodeError(CdsError):
    """A response body did not have the shape the operation expects."""

    def __init__(self, message: str, *, subcode: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="protocol_decode_error", subcode=subcode, details=details, source="client")


class RemoteOperationError(CdsError):
    """The server rejected a request, either directly or inside a batch part.

    ``code`` is always ``"remote_operation_error"`` like every other
    :class:`CdsError` category. The server's own error code (for example
    ``0x80040217``) is in :attr:`service_code` and in
    ``details["service_error_code"]``.

    Retrying is left to the caller; ``is_transient`` is only a hint and is set
    for HTTP 429 and 503.

    :param message: Server error message, or a short excerpt of the body.
    :param http_status: HTTP status of the response or batch part.
    :param service_code: ``error.code`` from the response payload, if any.
    :param operation_index: Position of the failed operation in a batch.
    """

    def __init__(
        self,
        message: str,
        http_status: int,
        *,
        service_code: Optional[str] = None,
        operation_index: Optional[int] = None,
        service_request_id: Optional[str] = None,
        retry_after: Optional[int] = None,
        body_excerpt: Optional[str] = None,
    ) -> None:
        self.http_status = http_status
        self.service_code = service_code
        self.operation_index = operation_index
        d: Dict[str, Any] = {}
        if service_code is not None:
            d["service_error_code"] = service_code
        if operation_index is not None:
            d["operation_index"] = operation_index
        if service_request_id is not None:
            d["service_request_id"] = service_request_id
        if retry_after is not None:
            d["retry_after"] = retry_after
        if body_excerpt is not None:
            d["body_excerpt"] = body_excerpt
        subcode = f"http_{http_status}"
        super().__init__(
            message,
            code="remote_operation_error",
            subcode=subcode if subcode in ALL_HTTP_SUBCODES else None,
            status_code=http_status,
            details=d,
            source="server",
            is_transient=http_status in TRANSIENT_STATUS_CODES,
        )

    @classmethod
    def from_response(
        cls,
        status: int,
        headers: Mapping[str, str],
        body: Union[bytes, str, Dict[str, Any], None],
        *,
        operation_index: Optional[int] = None,
    ) -> "RemoteOperationError":
        """Build an error from a non-2xx response and its ``{"error": {code, message}}`` payload."""
        payload: Any = body
        text = ""
        if isinstance(body, bytes):
            text = body.decode("utf-8", errors="replace")
        elif isinstance(body, str):
            text = body
        if isinstance(body, (bytes, str)):
            try:
                payload = json.loads(text) if text.strip() else None
            except ValueError:
                payload = None

        service_code = None
        message = None
        if isinstance(payload, dict):
            err = payload.get("error")
            if isinstance(err, dict):
                c = err.get("code")
                m = err.get("message")
                service_code = str(c) if c is not None else None
                message = m if isinstance(m, str) else None
        if not message:
            message = text.strip()[:200] or f"HTTP {status}"

        lowered = {str(k).lower(): v for k, v in (headers or {}).items()}
        retry_after = None
        ra = lowered.get("retry-after")
        if ra is not None:
            try:
                retry_after = int(ra)
            except (TypeError, ValueError):
                retry_after = None

        return cls(
            message,
            status,
            service_code=service_code,
            operation_index=operation_index,
            service_request_id=lowered.get("x-ms-service-request-id"),
            retry_after=retry_after,
            body_excerpt=text[:200] if text else None,
        )


__all__ = [
    "CdsError",
    "ConfigurationError",
    "ParameterMismatchError",
    "ProtocolDecodeError",
    "RemoteOperationError",
]
