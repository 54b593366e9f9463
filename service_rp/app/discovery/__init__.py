"""
Provider discovery package.

Reads the identity provider's ``.well-known/openid-configuration`` document
at startup and exposes the resulting ``ProviderMetadata`` to the other
components. Nothing here fetches at import time.
"""

from .provider import ProviderDirectory, ProviderMetadata, discovery_url

__all__ = ["ProviderDirectory", "ProviderMetadata", "discovery_url"]
