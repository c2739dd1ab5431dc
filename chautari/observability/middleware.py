# SPDX-License-Identifier: Apache-2.0

"""
Observability Middleware

Flask instrumentation and structured request logging.
"""

import time
import logging
from flask import Flask, request, g
from opentelemetry import trace
from opentelemetry.instrumentation.flask import FlaskInstrumentor

logger = logging.getLogger(__name__)


def add_observability_middleware(app: Flask):
    """Add OpenTelemetry instrumentation and request logging to Flask app."""

    FlaskInstrumentor().instrument_app(app)

    @app.before_request
    def before_request():
        """Start timing and capture the trace id for the response header."""
        g.start_time = time.time()
        g.trace_id = None

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            g.trace_id = format(span_context.trace_id, "032x")

    @app.after_request
    def after_request(response):
        """Log request completion and expose the trace id."""
        duration_ms = round((time.time() - g.get('start_time', time.time())) * 1000, 2)

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("http.duration_ms", duration_ms)

        actor = g.get('actor')
        logger.info(
            "HTTP request completed",
            extra={
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "actor_id": actor.actor_id if actor else None,
                "trace_id": g.get('trace_id')
            }
        )

        if g.get('trace_id'):
            response.headers['X-Trace-Id'] = g.trace_id

        return response
