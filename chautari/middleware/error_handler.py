# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Error handling middleware producing RFC 7807 problem documents.
"""

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException
from typing import Dict, Any, Tuple
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
import logging

from ..domain.errors import ChautariError
from ..services.hal import HalFormatter

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

_HTTP_ERROR_TYPES = {
    400: ("bad-request", "Bad Request"),
    401: ("authentication-required", "Authentication Required"),
    403: ("forbidden", "Forbidden"),
    404: ("resource-not-found", "Resource Not Found"),
    405: ("method-not-allowed", "Method Not Allowed"),
    409: ("resource-conflict", "Resource Conflict"),
    415: ("unsupported-media-type", "Unsupported Media Type"),
    422: ("validation-error", "Validation Error"),
    500: ("internal-server-error", "Internal Server Error"),
    503: ("service-unavailable", "Service Unavailable"),
}


class ErrorHandlerMiddleware:
    """Centralized error handling for HTTP, application and unexpected errors."""

    def __init__(self, app: Flask, hal_formatter: HalFormatter):
        self.app = app
        self.hal_formatter = hal_formatter
        self.register_error_handlers()

    def register_error_handlers(self):
        """Register error handlers with Flask application."""

        @self.app.errorhandler(ChautariError)
        def handle_application_error(error: ChautariError):
            return self.handle_application_error(error)

        @self.app.errorhandler(HTTPException)
        def handle_http_exception(error: HTTPException):
            return self.handle_http_error(error)

        @self.app.errorhandler(Exception)
        def handle_generic_exception(error: Exception):
            return self.handle_unexpected_error(error)

    def handle_application_error(self, error: ChautariError) -> Tuple[Any, int]:
        """
        Render a domain error with its mapped status.

        Args:
            error: Application error

        Returns:
            Tuple of (JSON response, status code)
        """
        with tracer.start_as_current_span("error_handler.application_error") as span:
            span.set_attributes({
                "error.type": error.error_type,
                "error.status": error.status_code,
                "http.method": request.method,
                "http.path": request.path
            })

            log = logger.error if error.status_code >= 500 else logger.warning
            log(
                f"Application error: {error.error_type}",
                extra={
                    "error_type": error.error_type,
                    "status_code": error.status_code,
                    "detail": error.message,
                    "path": request.path,
                    "method": request.method
                }
            )

            error_response = self.hal_formatter.build_error_response(
                error.error_type,
                error.title,
                error.status_code,
                error.message,
                request.path,
                field=getattr(error, "field", None)
            )
            return jsonify(error_response), error.status_code

    def handle_http_error(self, error: HTTPException) -> Tuple[Any, int]:
        """Render werkzeug HTTP errors (404 routes, 405 methods, ...)."""
        status = error.code or 500
        error_type, title = _HTTP_ERROR_TYPES.get(status, ("http-error", error.name))
        detail = str(error.description) if error.description else title

        logger.warning(
            f"Client error: {title}",
            extra={
                "error_type": error_type,
                "status_code": status,
                "path": request.path,
                "method": request.method,
                "user_agent": request.headers.get('User-Agent'),
                "ip_address": request.remote_addr
            }
        )

        error_response = self.hal_formatter.build_error_response(
            error_type, title, status, detail, request.path
        )
        return jsonify(error_response), status

    def handle_unexpected_error(self, error: Exception) -> Tuple[Dict[str, Any], int]:
        """
        Handle unexpected exceptions not caught by specific handlers.

        Args:
            error: Unexpected exception

        Returns:
            Tuple of (error response, status code)
        """
        span = trace.get_current_span()
        span.record_exception(error)
        span.set_status(Status(StatusCode.ERROR, error.__class__.__name__))

        logger.error(
            f"Unexpected error: {error.__class__.__name__}",
            extra={
                "error_type": "unexpected-error",
                "error_class": error.__class__.__name__,
                "error_message": str(error),
                "path": request.path,
                "method": request.method
            },
            exc_info=True
        )

        # Don't expose internal error details in production
        detail = "An unexpected error occurred. Please try again later."
        if self.app.config.get('ENVIRONMENT') != 'production':
            detail = f"{error.__class__.__name__}: {str(error)}"

        error_response = self.hal_formatter.build_error_response(
            "internal-server-error", "Internal Server Error", 500, detail, request.path
        )
        return jsonify(error_response), 500
