"""
Shared error handling for relying-party services.

Every error carries a stable ``code``, a caller-facing ``message`` and an
HTTP ``status_code``. ``details`` are for logs; handlers decide how much of
an error reaches the client.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import get_request_id


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class RelyingPartyError(Exception):
    """Base exception for relying-party services."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=get_request_id(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(RelyingPartyError):
    """Invalid or incomplete service configuration."""

    status_code = 500

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class DiscoveryError(RelyingPartyError):
    """The identity provider's discovery document could not be loaded.

    Raised at startup; the service must not begin serving when this occurs.
    """

    status_code = 503

    def __init__(self, message: str = "Provider discovery failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("DISCOVERY_ERROR", message, details)


class AuthenticationError(RelyingPartyError):
    """Authentication-related errors. Always surfaced as an empty 401."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None,
                 code: str = "AUTHENTICATION_ERROR"):
        super().__init__(code, message, details)


class TokenExchangeError(AuthenticationError):
    """The token endpoint rejected or garbled an authorization-code exchange."""

    def __init__(self, message: str = "Token exchange failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="TOKEN_EXCHANGE_ERROR")


class ValidationError(AuthenticationError):
    """An ID token failed a claim or signature check.

    The message is deliberately generic; the failed check is recorded in
    ``details["reason"]`` for logging only.
    """

    def __init__(self, reason: str = "invalid_token", details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details.setdefault("reason", reason)
        super().__init__("Token validation failed", details, code="VALIDATION_ERROR")

    @property
    def reason(self) -> str:
        return self.details["reason"]


class KeyResolutionError(ValidationError):
    """A token's key id could not be resolved from the provider key set."""

    def __init__(self, kid: Optional[str], details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details["kid"] = kid
        super().__init__("signing_key_not_found", details)


class UpstreamError(RelyingPartyError):
    """A delegated resource call failed; carries the upstream response verbatim."""

    def __init__(self, status_code: int, body: bytes = b"", content_type: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.body = body
        self.content_type = content_type
        super().__init__("UPSTREAM_ERROR", f"Resource API responded with {status_code}", details)
