"""Code-for-token exchange client."""

from .client import CodeExchangeClient, TokenSet

__all__ = ["CodeExchangeClient", "TokenSet"]
