"""Tracing helpers (OpenTelemetry API) for storage operations.

Spans are no-ops unless the host process installs a TracerProvider.
"""

import inspect
from collections.abc import Callable
from functools import wraps
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

# Allowlist of kwarg names recorded as span attributes (case-insensitive).
# Anything else is skipped so credentials and config values never leak.
_SAFE_SPAN_ATTR_KEYS = frozenset({
    "name", "document_id", "root", "app", "collection", "drain", "count", "limit",
})


def _set_safe_span_attrs(span: trace.Span, kwargs: dict) -> None:
    """Set span attributes from kwargs; only allowlisted keys are recorded."""
    for key, value in kwargs.items():
        if not key.startswith("_") and key.lower() in _SAFE_SPAN_ATTR_KEYS:
            span.set_attribute(f"arg.{key}", str(value))


def _finish(span: trace.Span, error: Exception | None) -> None:
    if error is None:
        span.set_status(Status(StatusCode.OK))
    else:
        span.set_status(Status(StatusCode.ERROR, str(error)))
        span.record_exception(error)


def traced(
    operation_name: str | None = None,
    attributes: dict | None = None,
) -> Callable:
    """Decorator to create a span for a function (sync or async).

    Args:
        operation_name: Span name (defaults to module.funcname).
        attributes: Optional dict of attributes to set on the span.

    Returns:
        Decorated function.
    """

    def decorator(func: Callable) -> Callable:
        tracer = trace.get_tracer("docconf")
        span_name = operation_name or f"{func.__module__}.{func.__name__}"

        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            with tracer.start_as_current_span(
                span_name, record_exception=False, set_status_on_exception=False
            ) as span:
                if attributes:
                    span.set_attributes(attributes)
                _set_safe_span_attrs(span, kwargs)
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _finish(span, e)
                    raise
                _finish(span, None)
                return result

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with tracer.start_as_current_span(
                span_name, record_exception=False, set_status_on_exception=False
            ) as span:
                if attributes:
                    span.set_attributes(attributes)
                _set_safe_span_attrs(span, kwargs)
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    _finish(span, e)
                    raise
                _finish(span, None)
                return result

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def add_span_attributes(**attributes: str | int | float | bool) -> None:
    """Add attributes to the current span."""
    span = trace.get_current_span()
    if span and span.is_recording():
        for key, value in attributes.items():
            span.set_attribute(key, value)


def add_span_event(name: str, attributes: dict | None = None) -> None:
    """Add an event to the current span."""
    span = trace.get_current_span()
    if span and span.is_recording():
        span.add_event(name, attributes=attributes or {})
