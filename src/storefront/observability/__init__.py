"""
Observability utilities for storefront.

Tracing is composition based: services and adapters take a ``Tracer`` in
their constructor. OpenTelemetry is optional; without it every component
falls back to ``NullTracer``.

Example:
    >>> from storefront.observability import MockTracer
    >>> tracer = MockTracer()
    >>> orders = OrderOrchestrator(database, tracer=tracer)
    >>> await orders.create_order(user_id, {product_id: 1})
    >>> "storefront.order.create" in tracer.span_names
    True
"""

from storefront.observability.attributes import (
    ATTR_AMOUNT,
    ATTR_DB_SYSTEM,
    ATTR_EXPECTED_VERSION,
    ATTR_ITEM_COUNT,
    ATTR_LOCK_KEY,
    ATTR_LOCK_TIMEOUT,
    ATTR_ORDER_ID,
    ATTR_ORDER_STATUS,
    ATTR_PRODUCT_ID,
    ATTR_QUANTITY,
    ATTR_USER_ID,
)
from storefront.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)
from storefront.observability.tracing import OTEL_AVAILABLE, should_trace

__all__ = [
    "OTEL_AVAILABLE",
    "should_trace",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    "ATTR_USER_ID",
    "ATTR_PRODUCT_ID",
    "ATTR_ORDER_ID",
    "ATTR_ORDER_STATUS",
    "ATTR_QUANTITY",
    "ATTR_AMOUNT",
    "ATTR_ITEM_COUNT",
    "ATTR_EXPECTED_VERSION",
    "ATTR_LOCK_KEY",
    "ATTR_LOCK_TIMEOUT",
    "ATTR_DB_SYSTEM",
]
