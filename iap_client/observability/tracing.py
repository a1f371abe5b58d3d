"""
Distributed Tracing with OpenTelemetry.

A purchase session runs in one span; receipt verification and remote receipt
checks open child spans beneath it. Session state changes are recorded as
span events.
"""

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode, Tracer

from iap_client.config import Settings, settings

TRACER_NAME = "iap_client"


def setup_tracing(config: Settings | None = None) -> None:
    """
    Install an OTLP-exporting tracer provider.

    Does nothing unless tracing is enabled. Hosts that already own a tracer
    provider leave it disabled and the client's spans join theirs.
    """
    config = config or settings
    if not config.tracing_enabled:
        return

    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": config.service_name,
                "service.version": config.service_version,
            }
        )
    )
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=config.otlp_endpoint, insecure=config.otlp_insecure)
        )
    )
    trace.set_tracer_provider(provider)


def get_tracer(name: str = TRACER_NAME) -> Tracer:
    return trace.get_tracer(name)


def add_span_attributes(span: Span, **attributes: Any) -> None:
    """Add attributes to a span, stringifying non-primitive values."""
    for key, value in attributes.items():
        if value is None:
            continue
        if not isinstance(value, (str, int, float, bool)):
            value = str(value)
        span.set_attribute(key, value)


def record_state_change(span: Span, state: str, **attributes: Any) -> None:
    """Record a purchase state transition as a span event."""
    span.add_event("purchase_state_changed", attributes={"state": state, **attributes})


def set_span_error(span: Span, error: BaseException) -> None:
    """Mark span as error and record exception."""
    span.set_status(Status(StatusCode.ERROR, str(error)))
    span.record_exception(error)


class trace_operation:
    """
    Run a block inside a span that is current for its duration.

    Usage:
        with trace_operation("receipt_verification", product_id=product_id) as span:
            span.set_attribute("receipt.typ", typ)

    Spans opened inside the block (including in tasks created there) become
    children of this one. An exception escaping the block marks the span as
    failed.
    """

    def __init__(self, operation_name: str, **attributes: Any) -> None:
        self.operation_name = operation_name
        self.attributes = attributes
        self.span: Span | None = None
        self.tracer = get_tracer()
        self._activation: Any = None

    def __enter__(self) -> Span:
        self.span = self.tracer.start_span(self.operation_name)
        add_span_attributes(self.span, **self.attributes)
        self._activation = trace.use_span(
            self.span,
            end_on_exit=False,
            record_exception=False,
            set_status_on_exception=False,
        )
        self._activation.__enter__()
        return self.span

    def __exit__(self, exc_type: Any, exc_val: BaseException | None, exc_tb: Any) -> None:
        if self.span is None:
            return
        if exc_val is not None:
            set_span_error(self.span, exc_val)
        self._activation.__exit__(exc_type, exc_val, exc_tb)
        self.span.end()
