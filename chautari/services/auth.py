# SPDX-License-Identifier: Apache-2.0

"""
JWT identity for the switch API.

Access tokens are RS256-signed and carry the actor's role and, for agency
staff and admins, the agency they belong to.
"""

import os
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Tuple
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from opentelemetry import trace
from pydantic import ValidationError
import logging

from ..models.entities import ActorContext
from ..models.enums import ActorRole

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when a token cannot be issued."""
    pass


class TokenValidationError(Exception):
    """Raised when token validation fails."""
    pass


def generate_key_pair() -> Tuple[str, str]:
    """Generate an RSA key pair (PEM private, PEM public) for development use."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048
    )

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    ).decode('utf-8')

    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('utf-8')

    return private_pem, public_pem


class AuthService:
    """RS256 access token issuing and validation."""

    def __init__(self, private_key: Optional[str] = None, public_key: Optional[str] = None,
                 access_token_expire_minutes: Optional[int] = None):
        """
        Initialize the authentication service.

        Args:
            private_key: RS256 private key for token signing (PEM format)
            public_key: RS256 public key for token verification (PEM format)
            access_token_expire_minutes: Access token lifetime
        """
        private_key = private_key or os.getenv("JWT_PRIVATE_KEY")
        public_key = public_key or os.getenv("JWT_PUBLIC_KEY")
        if not private_key or not public_key:
            logger.warning("No JWT key pair configured, generating development key pair")
            private_key, public_key = generate_key_pair()

        self.private_key = private_key
        self.public_key = public_key
        self.algorithm = "RS256"
        self.access_token_expire_minutes = access_token_expire_minutes or int(
            os.getenv("JWT_ACCESS_TOKEN_MINUTES", "15")
        )

    def generate_access_token(
        self,
        actor_id: str,
        role: ActorRole,
        agency_id: Optional[str] = None,
        email: Optional[str] = None,
        name: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Issue an access token.

        Returns:
            Dictionary with access_token, token_type, expires_in and expires_at
        """
        with tracer.start_as_current_span("auth.generate_access_token") as span:
            role = ActorRole(role)
            span.set_attributes({"user.id": actor_id, "user.role": role.value})

            now = datetime.now(timezone.utc)
            expires_at = now + timedelta(minutes=self.access_token_expire_minutes)
            payload = {
                "sub": actor_id,
                "role": role.value,
                "agency_id": agency_id,
                "email": email,
                "name": name,
                "iat": now,
                "exp": expires_at,
                "type": "access"
            }

            try:
                token = jwt.encode(payload, self.private_key, algorithm=self.algorithm)
            except (jwt.PyJWTError, ValueError, TypeError) as e:
                logger.error(f"Token generation failed: {str(e)}")
                raise AuthenticationError(f"Failed to generate token: {str(e)}")

            logger.info("Access token issued", extra={"user_id": actor_id, "role": role.value})
            return {
                "access_token": token,
                "token_type": "Bearer",
                "expires_in": self.access_token_expire_minutes * 60,
                "expires_at": expires_at.isoformat()
            }

    def validate_token(self, token: str) -> Dict[str, Any]:
        """
        Validate and decode an access token.

        Raises:
            TokenValidationError: If token is invalid or expired
        """
        with tracer.start_as_current_span("auth.validate_token") as span:
            try:
                payload = jwt.decode(
                    token,
                    self.public_key,
                    algorithms=[self.algorithm],
                    options={"verify_exp": True, "require": ["sub", "exp"]}
                )
            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")
            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning(f"Token validation failed: {str(e)}")
                raise TokenValidationError(f"Invalid token: {str(e)}")

            if payload.get("type") != "access":
                raise TokenValidationError("Invalid token type. Expected access")

            span.set_attributes({
                "auth.validation_result": "success",
                "user.id": payload.get("sub"),
                "user.role": payload.get("role") or ""
            })
            return payload

    def actor_from_payload(self, payload: Dict[str, Any], request_info: Optional[Dict[str, Any]] = None) -> ActorContext:
        """
        Build an ActorContext from a validated token payload.

        Raises:
            TokenValidationError: the role claim is missing or unknown
        """
        request_info = request_info or {}
        try:
            return ActorContext(
                actor_id=payload["sub"],
                role=ActorRole(payload.get("role")),
                agency_id=payload.get("agency_id"),
                email=payload.get("email"),
                name=payload.get("name"),
                token_payload=payload,
                ip_address=request_info.get("ip_address"),
                user_agent=request_info.get("user_agent"),
                session_id=request_info.get("session_id")
            )
        except (KeyError, ValueError, ValidationError) as e:
            raise TokenValidationError(f"Token does not describe a valid actor: {e}")
