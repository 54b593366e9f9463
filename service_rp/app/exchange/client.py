"""
Authorization-code exchange against the provider's token endpoint.
"""

from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError

from shared.errors import TokenExchangeError
from shared.logging import get_logger
from ..discovery import ProviderMetadata


class TokenSet(BaseModel):
    """Tokens returned by the token endpoint."""

    model_config = ConfigDict(extra="allow", frozen=True)

    id_token: str
    access_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None


class CodeExchangeClient:
    """Trades an authorization code for a ``TokenSet``.

    One POST per code. Failures are not retried: the code is single-use at
    the provider and a failed exchange ends the login attempt.
    """

    def __init__(self,
                 http_client: httpx.AsyncClient,
                 metadata: ProviderMetadata,
                 client_id: str,
                 client_secret: str,
                 redirect_uri: str):
        self._http = http_client
        self.metadata = metadata
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.logger = get_logger("rp.exchange")

    def _form(self, code: str) -> Dict[str, str]:
        return {
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "redirect_uri": self.redirect_uri,
        }

    async def exchange(self, code: str) -> TokenSet:
        """Exchange ``code`` for tokens."""
        if not code:
            raise TokenExchangeError("Authorization code missing")

        try:
            response = await self._http.post(
                self.metadata.token_endpoint,
                data=self._form(code),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            self.logger.error("Token endpoint unreachable", error=str(e))
            raise TokenExchangeError(
                "Token endpoint unreachable",
                details={"error": str(e)}
            ) from e

        if not response.is_success:
            self.logger.warning(
                "Token endpoint rejected code exchange",
                status_code=response.status_code,
                body=response.text[:500]
            )
            raise TokenExchangeError(
                "Token endpoint rejected code exchange",
                details={"status_code": response.status_code}
            )

        try:
            payload: Any = response.json()
        except ValueError as e:
            raise TokenExchangeError("Token response is not JSON") from e

        if not isinstance(payload, dict):
            raise TokenExchangeError("Token response is not a JSON object")

        try:
            tokens = TokenSet.model_validate(payload)
        except PydanticValidationError as e:
            missing = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise TokenExchangeError(
                "Token response incomplete",
                details={"fields": missing}
            ) from e

        if not tokens.access_token:
            raise TokenExchangeError("Token response missing access_token")

        self.logger.info("Authorization code exchanged", token_type=tokens.token_type)
        return tokens
