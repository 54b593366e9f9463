"""
JWKS client for the provider's signing keys.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.errors import KeyResolutionError
from shared.logging import get_logger
from shared.metrics import MetricsCollector


class JWKSClient:
    """Lazily fetched ``kid -> JWK`` cache.

    A ``kid`` that is not cached triggers one refetch of the key set before the
    lookup gives up, so key rotation at the provider is picked up without a
    restart. The cache is replaced wholesale on refresh; readers always see
    either the old or the new mapping.
    """

    def __init__(self,
                 http_client: httpx.AsyncClient,
                 jwks_uri: str,
                 metrics: Optional[MetricsCollector] = None,
                 circuit_breaker: Optional[CircuitBreaker] = None):
        self._http = http_client
        self.jwks_uri = jwks_uri
        self.metrics = metrics
        self.logger = get_logger("rp.jwks")

        self._keys: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            "idp-jwks",
            failure_threshold=5,
            recovery_timeout=30.0
        )

    @property
    def cached_kids(self):
        return set(self._keys)

    async def get_key(self, kid: str) -> Optional[Dict[str, Any]]:
        """Return the JWK for ``kid``, refreshing the key set on a miss."""
        key = self._keys.get(kid)
        if key is not None:
            return key

        async with self._lock:
            # another request may have refreshed while we waited
            key = self._keys.get(kid)
            if key is not None:
                return key
            await self._refresh()

        key = self._keys.get(kid)
        if key is None:
            self.logger.warning("Key not found", kid=kid, known_kids=sorted(self._keys))
        return key

    async def _refresh(self) -> None:
        try:
            if self.metrics is not None:
                with self.metrics.time_operation("jwks_refresh_duration_seconds"):
                    payload = await self.circuit_breaker.call(self._fetch)
            else:
                payload = await self.circuit_breaker.call(self._fetch)
        except (httpx.HTTPError, ValueError, CircuitBreakerOpenException) as e:
            self._record_refresh("error")
            self.logger.error("Failed to fetch JWKS", jwks_uri=self.jwks_uri, error=str(e))
            raise KeyResolutionError(None, details={"error": str(e)}) from e

        keys = payload.get("keys") if isinstance(payload, dict) else None
        if not isinstance(keys, list):
            self._record_refresh("error")
            raise KeyResolutionError(None, details={"error": "JWKS response missing 'keys' array"})

        self._keys = {
            key["kid"]: key
            for key in keys
            if isinstance(key, dict) and isinstance(key.get("kid"), str)
        }
        self._record_refresh("ok")
        self.logger.info("JWKS refreshed successfully", keys_count=len(self._keys))

    async def _fetch(self) -> Any:
        response = await self._http.get(self.jwks_uri)
        response.raise_for_status()
        return response.json()

    def _record_refresh(self, status: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("jwks_refresh_total", status=status)

    def clear_cache(self):
        """Clear all cached keys."""
        self._keys = {}
        self.logger.info("JWKS cache cleared")
