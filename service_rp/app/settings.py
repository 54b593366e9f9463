"""
Relying-party configuration.

Values come from the process environment (or a ``.env`` file) using the
upper-cased field names, e.g. ``CLIENT_ID`` or ``OIDC_PROVIDER``.
"""

import secrets
from typing import List, Literal

from pydantic import Field

from shared.config import ServiceConfig

DEFAULT_SCOPE = "openid profile email read:to-dos delete:to-dos"
DEFAULT_ALGORITHMS = "RS256,RS384,RS512,ES256,ES384,ES512"


class RelyingPartySettings(ServiceConfig):
    """Settings for the relying-party web service."""

    service_name: str = "rp"
    port: int = 3000

    # Client registration at the IdP
    client_id: str
    client_secret: str
    oidc_provider: str
    api_identifier: str
    redirect_uri: str = "http://localhost:3000/callback"
    scope: str = DEFAULT_SCOPE
    response_type: str = "code"
    response_mode: str = "query"

    # Downstream resource API
    resource_api_url: str = "http://localhost:3001"

    # Cookies and sessions
    cookie_secret: str = Field(default_factory=lambda: secrets.token_hex(16))
    session_secret: str = Field(default_factory=lambda: secrets.token_hex(32))
    nonce_cookie_name: str = "oidc-nonce"
    nonce_max_age_seconds: int = Field(default=900, gt=0)
    session_cookie_name: str = "rp-session"
    session_max_age_seconds: int = Field(default=8 * 3600, gt=0)
    cookie_secure: bool = False
    cookie_samesite: Literal["lax", "strict", "none"] = "lax"

    # Token validation
    clock_skew_seconds: int = Field(default=0, ge=0)
    verify_code_flow_signature: bool = False
    allowed_algorithms: str = DEFAULT_ALGORITHMS

    @property
    def algorithms(self) -> List[str]:
        return [alg.strip() for alg in self.allowed_algorithms.split(",") if alg.strip()]


def get_settings(**overrides) -> RelyingPartySettings:
    """Load settings from the environment, with explicit overrides winning."""
    return RelyingPartySettings(**overrides)
