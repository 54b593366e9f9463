"""
Token validation package.

Validates ID tokens returned to the relying party. Two strengths exist:

- claims-only, for tokens fetched server-to-server from the token endpoint;
- signature-verified, for tokens the browser posts back, using keys resolved
  through the JWKS client.

Both run the same audience, nonce, expiry and issuer checks. Only
``IdentityClaims`` produced here may be written into a session.
"""

from .token_validator import IdentityClaims, TokenValidator, ValidationMode

__all__ = ["IdentityClaims", "TokenValidator", "ValidationMode"]
