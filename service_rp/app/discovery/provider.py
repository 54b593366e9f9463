"""
Provider directory: loads the IdP discovery document once at startup.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from shared.errors import DiscoveryError
from shared.logging import get_logger

REQUIRED_KEYS = ("authorization_endpoint", "token_endpoint", "issuer", "jwks_uri")


@dataclass(frozen=True)
class ProviderMetadata:
    """Endpoints and identity of the OpenID provider."""

    authorization_endpoint: str
    token_endpoint: str
    issuer: str
    jwks_uri: str

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "ProviderMetadata":
        missing = [key for key in REQUIRED_KEYS
                   if not isinstance(document.get(key), str) or not document.get(key)]
        if missing:
            raise DiscoveryError(
                "Discovery document missing required endpoints",
                details={"missing": missing}
            )
        return cls(**{key: document[key] for key in REQUIRED_KEYS})


def discovery_url(issuer_host: str) -> str:
    """Well-known configuration URL for a provider host.

    A bare host is reached over https; a value that already carries a scheme
    is used as the base URL unchanged.
    """
    base = issuer_host.strip().rstrip("/")
    if "://" not in base:
        base = f"https://{base}"
    return f"{base}/.well-known/openid-configuration"


class ProviderDirectory:
    """Holds the provider metadata shared by every request.

    ``initialize`` must complete before the service accepts traffic. The
    metadata is published once; later ``initialize`` calls return it without
    fetching again.
    """

    def __init__(self, http_client: httpx.AsyncClient):
        self._http = http_client
        self._metadata: Optional[ProviderMetadata] = None
        self.logger = get_logger("rp.discovery")

    @property
    def initialized(self) -> bool:
        return self._metadata is not None

    @property
    def metadata(self) -> ProviderMetadata:
        if self._metadata is None:
            raise DiscoveryError("Provider metadata requested before discovery")
        return self._metadata

    async def initialize(self, issuer_host: str) -> ProviderMetadata:
        """Fetch and publish the provider metadata."""
        if self._metadata is not None:
            return self._metadata

        url = discovery_url(issuer_host)
        try:
            response = await self._http.get(url)
            response.raise_for_status()
            document = response.json()
        except httpx.HTTPStatusError as e:
            self.logger.error("Discovery endpoint returned error", url=url,
                              status_code=e.response.status_code)
            raise DiscoveryError(
                f"Unable to get OIDC endpoints for {issuer_host}",
                details={"url": url, "status_code": e.response.status_code}
            ) from e
        except httpx.HTTPError as e:
            self.logger.error("Discovery request failed", url=url, error=str(e))
            raise DiscoveryError(
                f"Unable to get OIDC endpoints for {issuer_host}",
                details={"url": url, "error": str(e)}
            ) from e
        except ValueError as e:
            raise DiscoveryError(
                "Discovery document is not valid JSON",
                details={"url": url}
            ) from e

        if not isinstance(document, dict):
            raise DiscoveryError("Discovery document is not a JSON object", details={"url": url})

        self._metadata = ProviderMetadata.from_document(document)
        self.logger.info(
            "Provider metadata loaded",
            issuer=self._metadata.issuer,
            authorization_endpoint=self._metadata.authorization_endpoint,
            token_endpoint=self._metadata.token_endpoint,
            jwks_uri=self._metadata.jwks_uri
        )
        return self._metadata
