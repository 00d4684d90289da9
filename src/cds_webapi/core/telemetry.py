# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
Telemetry infrastructure for the CDS Web API client.

Provides logging, optional OpenTelemetry tracing and an extensible hook
system around every transport call.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import (
    Any,
    Dict,
    Generator,
    List,
    Mapping,
    Optional,
    Protocol,
    Union,
    runtime_checkable,
)

# Optional OpenTelemetry imports
try:
    from opentelemetry import trace
    from opentelemetry.trace import Status, StatusCode

    _OTEL_AVAILABLE = True
except ImportError:
    _OTEL_AVAILABLE = False
    trace = None  # type: ignore
    Status = None  # type: ignore
    StatusCode = None  # type: ignore

_LOGGER = logging.getLogger(__name__)


OTEL_ATTR_HTTP_METHOD = "http.request.method"
OTEL_ATTR_HTTP_URL = "url.full"
OTEL_ATTR_HTTP_STATUS_CODE = "http.response.status_code"
OTEL_ATTR_CDS_OPERATION = "cds.operation"
OTEL_ATTR_CDS_ENTITY_SET = "cds.entity_set"
OTEL_ATTR_CDS_REQUEST_ID = "cds.client_request_id"
OTEL_ATTR_CDS_CORRELATION_ID = "cds.correlation_id"


@dataclass(frozen=True)
class TelemetryConfig:
    """Configuration for client telemetry.

    Telemetry is opt-in.

    Example::

        config = CdsConfig(
            telemetry=TelemetryConfig(enable_logging=True, log_level="DEBUG")
        )
    """

    enable_tracing: bool = False
    enable_logging: bool = False

    log_level: str = "WARNING"
    logger_name: str = "cds_webapi"

    hooks: List["TelemetryHook"] = field(default_factory=list)


@dataclass
class RequestContext:
    """Context passed to telemetry hooks for each HTTP request."""

    client_request_id: str
    correlation_id: str

    method: str
    url: str
    operation: str  # e.g. "save", "batch", "function.WhoAmI"
    entity_set: Optional[str] = None

    start_time: float = field(default_factory=time.perf_counter)

    # Custom data bag for hooks to share state
    custom_data: Dict[str, Any] = field(default_factory=dict)

    _span: Any = field(default=None, repr=False)


@dataclass
class ResponseContext:
    """Response information passed to telemetry hooks."""

    status_code: int
    duration_ms: float
    service_request_id: Optional[str] = None
    error: Optional[Exception] = None


@runtime_checkable
class TelemetryHook(Protocol):
    """Protocol for custom telemetry hooks. Implement only what you need."""

    def on_request_start(self, context: RequestContext) -> None:
        ...

    def on_request_end(self, request: RequestContext, response: ResponseContext) -> None:
        ...

    def on_request_error(self, request: RequestContext, error: Exception) -> None:
        ...

    def get_additional_headers(self) -> Dict[str, str]:
        ...


class TelemetryManager:
    """Manages telemetry instrumentation. Internal, not part of the public API."""

    def __init__(self, config: Optional[TelemetryConfig] = None) -> None:
        self._config = config or TelemetryConfig()
        self._tracer: Optional[Any] = None
        self._logger: Optional[logging.Logger] = None
        self._hooks = list(self._config.hooks)
        self._initialize()

    @property
    def is_tracing_enabled(self) -> bool:
        return self._config.enable_tracing and _OTEL_AVAILABLE

    def _initialize(self) -> None:
        if self._config.enable_tracing and _OTEL_AVAILABLE:
            self._tracer = trace.get_tracer("cds_webapi")

        if self._config.enable_logging:
            self._logger = logging.getLogger(self._config.logger_name)
            self._logger.setLevel(getattr(logging, self._config.log_level.upper()))

    @contextmanager
    def trace_request(
        self,
        operation: str,
        method: str,
        url: str,
        client_request_id: str,
        correlation_id: str,
        entity_set: Optional[str] = None,
    ) -> Generator[RequestContext, None, None]:
        """Create a traced request context.

        Usage::

            with telemetry.trace_request("save", "POST", url, req_id, corr_id) as ctx:
                response = transport.send(...)
                telemetry.record_response(ctx, response.status)
        """
        ctx = RequestContext(
            client_request_id=client_request_id,
            correlation_id=correlation_id,
            method=method,
            url=url,
            operation=operation,
            entity_set=entity_set,
        )

        self._dispatch_request_start(ctx)

        span = None
        if self._tracer:
            span_name = f"CDS {operation}"
            if entity_set:
                span_name = f"{span_name} {entity_set}"
            span = self._tracer.start_span(
                span_name,
                kind=trace.SpanKind.CLIENT,
                attributes={
                    OTEL_ATTR_CDS_OPERATION: operation,
                    OTEL_ATTR_HTTP_METHOD: method,
                    OTEL_ATTR_HTTP_URL: url,
                    OTEL_ATTR_CDS_REQUEST_ID: client_request_id,
                    OTEL_ATTR_CDS_CORRELATION_ID: correlation_id,
                    **({OTEL_ATTR_CDS_ENTITY_SET: entity_set} if entity_set else {}),
                },
            )
            ctx._span = span

        try:
            yield ctx
        except Exception as e:
            if span:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.record_exception(e)
            if self._logger:
                self._logger.error(
                    f"{ctx.operation} {ctx.method} failed: {e}",
                    extra={"client_request_id": ctx.client_request_id},
                )
            self._dispatch_request_error(ctx, e)
            raise
        finally:
            if span:
                span.end()

    def record_response(
        self,
        ctx: RequestContext,
        status_code: int,
        service_request_id: Optional[str] = None,
        error: Optional[Exception] = None,
    ) -> None:
        """Record the response on the span, log it and dispatch to hooks."""
        duration_ms = (time.perf_counter() - ctx.start_time) * 1000

        response = ResponseContext(
            status_code=status_code,
            duration_ms=duration_ms,
            service_request_id=service_request_id,
            error=error,
        )

        if ctx._span:
            ctx._span.set_attribute(OTEL_ATTR_HTTP_STATUS_CODE, status_code)

        if self._logger:
            level = logging.WARNING if status_code >= 400 else logging.DEBUG
            self._logger.log(
                level,
                f"{ctx.operation} {ctx.method} {status_code} {duration_ms:.1f}ms",
                extra={
                    "client_request_id": ctx.client_request_id,
                    "service_request_id": service_request_id,
                },
            )

        self._dispatch_request_end(ctx, response)

    def _call_hooks(self, name: str, *args: Any) -> List[Any]:
        """Call ``name`` on every hook that defines it. A failing hook is logged and skipped."""
        results: List[Any] = []
        for hook in self._hooks:
            method = getattr(hook, name, None)
            if method is None:
                continue
            try:
                results.append(method(*args))
            except Exception:
                (self._logger or _LOGGER).debug("Telemetry hook %s.%s failed", type(hook).__name__, name, exc_info=True)
        return results

    def _dispatch_request_start(self, ctx: RequestContext) -> None:
        self._call_hooks("on_request_start", ctx)

    def _dispatch_request_end(self, request: RequestContext, response: ResponseContext) -> None:
        self._call_hooks("on_request_end", request, response)

    def _dispatch_request_error(self, request: RequestContext, error: Exception) -> None:
        self._call_hooks("on_request_error", request, error)

    def get_additional_headers(self) -> Dict[str, str]:
        """Collect additional headers from all hooks."""
        headers: Dict[str, str] = {}
        for hook_headers in self._call_hooks("get_additional_headers"):
            if isinstance(hook_headers, Mapping):
                headers.update(hook_headers)
        return headers


class NoOpTelemetryManager:
    """No-op telemetry manager when telemetry is disabled."""

    @contextmanager
    def trace_request(
        self,
        operation: str,
        method: str,
        url: str,
        client_request_id: str,
        correlation_id: str,
        entity_set: Optional[str] = None,
    ) -> Generator[RequestContext, None, None]:
        yield RequestContext(
            client_request_id=client_request_id,
            correlation_id=correlation_id,
            method=method,
            url=url,
            operation=operation,
            entity_set=entity_set,
        )

    def record_response(self, *args: Any, **kwargs: Any) -> None:
        pass

    def get_additional_headers(self) -> Dict[str, str]:
        return {}


def create_telemetry_manager(
    config: Optional[TelemetryConfig],
) -> Union[TelemetryManager, NoOpTelemetryManager]:
    """Factory to create the appropriate telemetry manager."""
    if config is None:
        return NoOpTelemetryManager()

    if not (config.enable_tracing or config.enable_logging or config.hooks):
        return NoOpTelemetryManager()

    return TelemetryManager(config)


__all__ = [
    "TelemetryConfig",
    "TelemetryHook",
    "TelemetryManager",
    "NoOpTelemetryManager",
    "RequestContext",
    "ResponseContext",
    "create_telemetry_manager",
]
