"""
Delegated calls to the downstream resource API using the session's access token.
"""

from typing import Any, Optional

import httpx

from shared.errors import AuthenticationError, UpstreamError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..session import Session


class DelegatedResourceClient:
    """Relays requests to the resource API as the signed-in user.

    Upstream failures come back as ``UpstreamError`` with the original status
    and body. A rejected access token is final for the request; there is no
    refresh or retry.
    """

    def __init__(self,
                 http_client: httpx.AsyncClient,
                 base_url: str,
                 metrics: Optional[MetricsCollector] = None):
        self._http = http_client
        self.base_url = base_url.rstrip("/")
        self.metrics = metrics
        self.logger = get_logger("rp.resources")

    def url_for(self, path: str) -> str:
        if not path:
            return self.base_url
        return f"{self.base_url}/{path.lstrip('/')}"

    async def call(self, session: Session, method: str, path: str = "", **kwargs: Any) -> httpx.Response:
        """Send ``method path`` to the resource API with the session's bearer token."""
        access_token = session.access_token
        if not access_token:
            raise AuthenticationError("No access token in session")

        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {access_token}"
        url = self.url_for(path)

        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            self._record(method, "timeout")
            self.logger.error("Resource API timed out", method=method, url=url)
            raise UpstreamError(504, b"", details={"error": str(e)}) from e
        except httpx.HTTPError as e:
            self._record(method, "error")
            self.logger.error("Resource API unreachable", method=method, url=url, error=str(e))
            raise UpstreamError(502, b"", details={"error": str(e)}) from e

        self._record(method, str(response.status_code))
        if not response.is_success:
            self.logger.warning(
                "Resource API returned error",
                method=method,
                url=url,
                status_code=response.status_code
            )
            raise UpstreamError(
                response.status_code,
                response.content,
                content_type=response.headers.get("content-type"),
            )
        return response

    async def get_json(self, session: Session, path: str = "") -> Any:
        response = await self.call(session, "GET", path)
        return _json_or_none(response)

    async def delete(self, session: Session, path: str) -> Any:
        response = await self.call(session, "DELETE", path)
        return _json_or_none(response)

    def _record(self, method: str, status: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("upstream_requests_total", method=method, status_code=status)


def _json_or_none(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise UpstreamError(
            502,
            response.content,
            content_type=response.headers.get("content-type"),
            details={"error": "resource API returned non-JSON body"}
        ) from e
