"""
Nonce guard package.

A nonce is generated per login attempt, stored in a signed HTTP-only cookie
and embedded in the authorization request. On callback it is consumed exactly
once, whether or not it matches.
"""

from .guard import ConsumedNonceRegistry, NonceGuard, nonces_match

__all__ = ["ConsumedNonceRegistry", "NonceGuard", "nonces_match"]
