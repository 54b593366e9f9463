"""
JWKS client package.

Retrieves and caches the provider's JSON Web Key Set, keyed by ``kid``, for
ID token signature checks. Keys are fetched lazily on first use and again
whenever a token names a ``kid`` the cache does not hold.
"""

from .client import JWKSClient

__all__ = ["JWKSClient"]
