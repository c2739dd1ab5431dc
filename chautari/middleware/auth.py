# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for JWT token validation and actor context extraction.
"""

from functools import wraps
from flask import request, jsonify, g, current_app
from typing import Optional, Dict, Any, Callable
from opentelemetry import trace
import logging

from ..models.entities import ActorContext
from ..services.auth import AuthService, TokenValidationError

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    JWT authentication middleware for Flask applications.

    Handles token extraction, validation and actor context building for
    protected endpoints.
    """

    def __init__(self, auth_service: AuthService):
        self.auth_service = auth_service

    def extract_token_from_request(self) -> Optional[str]:
        """
        Extract JWT token from the Authorization header.

        Returns:
            JWT token string or None if not found
        """
        auth_header = request.headers.get('Authorization', '')
        if auth_header.startswith('Bearer '):
            return auth_header[7:].strip() or None
        return None

    def get_request_info(self) -> Dict[str, Any]:
        """Extract request metadata for the actor context."""
        return {
            "ip_address": request.remote_addr,
            "user_agent": request.headers.get('User-Agent', ''),
            "session_id": request.headers.get('X-Session-ID'),
            "request_id": request.headers.get('X-Request-ID')
        }


def _unauthorized(error_type: str, title: str, detail: str):
    body = current_app.hal_formatter.build_error_response(error_type, title, 401, detail, request.path)
    return jsonify(body), 401


def optional_actor() -> Optional[ActorContext]:
    """
    Actor for a bearer token sent to a public endpoint.

    Missing or invalid tokens give None; public endpoints never reject them.
    """
    auth_middleware: AuthMiddleware = current_app.auth_middleware
    token = auth_middleware.extract_token_from_request()
    if not token:
        return None
    try:
        payload = auth_middleware.auth_service.validate_token(token)
        return auth_middleware.auth_service.actor_from_payload(payload, auth_middleware.get_request_info())
    except TokenValidationError as e:
        logger.debug(f"Ignoring invalid token on public endpoint: {e}")
        return None


def require_actor(f: Callable) -> Callable:
    """
    Decorator requiring a valid bearer token.

    The authenticated ``ActorContext`` is stored in ``g.actor``.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_middleware: AuthMiddleware = current_app.auth_middleware

        with tracer.start_as_current_span("auth.middleware.validate_request") as span:
            token = auth_middleware.extract_token_from_request()
            if not token:
                span.set_attribute("auth.result", "missing_token")
                logger.warning("Authentication failed: missing token")
                return _unauthorized(
                    "authentication-required",
                    "Authentication Required",
                    "Sign in and send your access token as 'Authorization: Bearer <token>'"
                )

            try:
                payload = auth_middleware.auth_service.validate_token(token)
                actor = auth_middleware.auth_service.actor_from_payload(
                    payload, auth_middleware.get_request_info()
                )
            except TokenValidationError as e:
                span.set_attribute("auth.result", "invalid_token")
                logger.warning(f"Authentication failed: {str(e)}")
                return _unauthorized("invalid-token", "Invalid Token", f"{e}. Sign in again to continue.")

            g.actor = actor
            span.set_attributes({
                "auth.result": "success",
                "user.id": actor.actor_id,
                "user.role": actor.role.value
            })
            logger.debug(
                "Authentication successful",
                extra={"user_id": actor.actor_id, "role": actor.role.value, "ip_address": actor.ip_address}
            )

        return f(*args, **kwargs)

    return decorated_function
