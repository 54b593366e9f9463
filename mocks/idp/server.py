"""
Mock OpenID provider with discovery, JWKS, authorize and token endpoints.

The authorize endpoint approves every request for a fixed user and redirects
straight back with a code; the token endpoint answers with RS256 tokens bound
to the nonce of the original request.
"""

import secrets
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import jwt
from fastapi import FastAPI, Form, HTTPException, Query
from fastapi.responses import JSONResponse, RedirectResponse

from shared.logging import get_logger
from shared.test_helpers import RSAKeyPair, discovery_document, generate_rsa_key, jwks_document


@dataclass
class PendingCode:
    """An issued authorization code waiting to be exchanged."""
    client_id: str
    redirect_uri: str
    nonce: Optional[str]
    scope: str
    audience: Optional[str]
    subject: str
    expires_at: float


class MockIdentityProvider:
    """Mock identity provider implementation."""

    def __init__(self,
                 base_url: str = "http://localhost:8080",
                 client_id: str = "rp-client",
                 client_secret: str = "rp-secret",
                 signing_key: Optional[RSAKeyPair] = None,
                 code_ttl: int = 60,
                 token_ttl: int = 3600):
        self.base_url = base_url.rstrip("/")
        self.issuer = f"{self.base_url}/"
        self.client_id = client_id
        self.client_secret = client_secret
        self.signing_key = signing_key or generate_rsa_key("mock-key-1")
        self.code_ttl = code_ttl
        self.token_ttl = token_ttl
        self.logger = get_logger("mock.idp")
        self.app = FastAPI(title="Mock OpenID Provider", version="1.0.0")

        self.users = {
            "auth0|user1": {
                "name": "John Doe",
                "email": "john.doe@example.com",
            }
        }
        self.default_subject = "auth0|user1"
        self._codes: Dict[str, PendingCode] = {}

        self._setup_routes()

    def _setup_routes(self):
        """Set up mock provider routes."""

        @self.app.get("/.well-known/openid-configuration")
        async def openid_configuration():
            """OpenID Connect discovery document."""
            return discovery_document(self.base_url, issuer=self.issuer)

        @self.app.get("/.well-known/jwks.json")
        async def jwks_endpoint():
            """JWKS endpoint."""
            return jwks_document(self.signing_key)

        @self.app.get("/authorize")
        async def authorize(
            response_type: str = Query(...),
            client_id: str = Query(...),
            redirect_uri: str = Query(...),
            scope: str = Query("openid"),
            nonce: Optional[str] = Query(None),
            audience: Optional[str] = Query(None),
            response_mode: str = Query("query"),
        ):
            """Approve the request and send the browser back with a code."""
            if client_id != self.client_id:
                raise HTTPException(status_code=400, detail="Unknown client")
            if response_type != "code" or response_mode != "query":
                raise HTTPException(status_code=400, detail="Unsupported response type")

            code = secrets.token_urlsafe(24)
            self._codes[code] = PendingCode(
                client_id=client_id,
                redirect_uri=redirect_uri,
                nonce=nonce,
                scope=scope,
                audience=audience,
                subject=self.default_subject,
                expires_at=time.time() + self.code_ttl,
            )
            self.logger.info("Authorization code issued", client_id=client_id)
            return RedirectResponse(f"{redirect_uri}?{urlencode({'code': code})}", status_code=302)

        @self.app.post("/oauth/token")
        async def token_endpoint(
            grant_type: str = Form(...),
            client_id: str = Form(...),
            client_secret: str = Form(...),
            code: str = Form(...),
            redirect_uri: str = Form(...),
        ):
            """Exchange an authorization code."""
            if grant_type != "authorization_code":
                return _oauth_error("unsupported_grant_type")
            if client_id != self.client_id or client_secret != self.client_secret:
                return _oauth_error("invalid_client", status_code=401)

            pending = self._codes.pop(code, None)
            if pending is None or pending.expires_at < time.time():
                return _oauth_error("invalid_grant")
            if pending.client_id != client_id or pending.redirect_uri != redirect_uri:
                return _oauth_error("invalid_grant")

            return self._issue_tokens(pending)

    def _issue_tokens(self, pending: PendingCode) -> Dict[str, Any]:
        now = int(time.time())
        profile = self.users[pending.subject]

        id_claims = {
            "iss": self.issuer,
            "sub": pending.subject,
            "aud": pending.client_id,
            "iat": now,
            "exp": now + self.token_ttl,
            **profile,
        }
        if pending.nonce:
            id_claims["nonce"] = pending.nonce

        access_claims = {
            "iss": self.issuer,
            "sub": pending.subject,
            "aud": pending.audience or pending.client_id,
            "azp": pending.client_id,
            "iat": now,
            "exp": now + self.token_ttl,
            "scope": pending.scope,
        }

        return {
            "access_token": self.sign(access_claims),
            "id_token": self.sign(id_claims),
            "token_type": "Bearer",
            "expires_in": self.token_ttl,
            "scope": pending.scope,
        }

    def sign(self, claims: Dict[str, Any]) -> str:
        return jwt.encode(
            claims,
            self.signing_key.private_pem,
            algorithm="RS256",
            headers={"kid": self.signing_key.kid},
        )


def _oauth_error(error: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error})


def create_app():
    """Create mock identity provider application."""
    server = MockIdentityProvider()
    return server.app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8080)
