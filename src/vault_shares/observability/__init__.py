"""Observability infrastructure for the share service.

Structured logging, Prometheus metrics, and request-ID correlation
middleware.

Quick start::

    from vault_shares.observability import configure_logging, get_logger
    from vault_shares.observability.middleware import (
        MetricsMiddleware,
        RequestIdMiddleware,
    )

    configure_logging()
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)
"""

from .logging import configure_logging, get_logger, redact_token, request_id_ctx
from .metrics import metrics_text

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics_text",
    "redact_token",
    "request_id_ctx",
]
