"""
Mock to-dos resource API protected by bearer access tokens.
"""

from typing import Any, Dict, List, Optional

import jwt
from fastapi import FastAPI, Header
from fastapi.responses import JSONResponse

from shared.logging import get_logger


class MockTodosServer:
    """Mock resource API implementation.

    Access tokens must be RS256 JWTs signed with ``public_key``'s private half
    and issued for ``audience``. Listing needs the ``read:to-dos`` scope,
    deleting needs ``delete:to-dos``.
    """

    def __init__(self, public_key: bytes, audience: str, issuer: Optional[str] = None):
        self.public_key = public_key
        self.audience = audience
        self.issuer = issuer
        self.logger = get_logger("mock.todos")
        self.app = FastAPI(title="Mock To-dos API", version="1.0.0")

        self.to_dos: List[Dict[str, Any]] = [
            {"id": 1, "description": "Buy milk"},
            {"id": 2, "description": "Write the quarterly report"},
            {"id": 3, "description": "Renew passport"},
        ]

        self._setup_routes()

    def _setup_routes(self):
        """Set up resource routes."""

        @self.app.get("/")
        async def list_to_dos(authorization: Optional[str] = Header(None)):
            """Return every to-do."""
            denied = self._authorize(authorization, "read:to-dos")
            if denied is not None:
                return denied
            return self.to_dos

        @self.app.delete("/{to_do_id}")
        async def delete_to_do(to_do_id: int, authorization: Optional[str] = Header(None)):
            """Delete one to-do."""
            denied = self._authorize(authorization, "delete:to-dos")
            if denied is not None:
                return denied

            remaining = [item for item in self.to_dos if item["id"] != to_do_id]
            if len(remaining) == len(self.to_dos):
                return JSONResponse(status_code=404, content={"error": "not_found"})
            self.to_dos = remaining
            return {"message": "To-do removed"}

    def _authorize(self, authorization: Optional[str], required_scope: str) -> Optional[JSONResponse]:
        if not authorization or not authorization.startswith("Bearer "):
            return JSONResponse(status_code=401, content={"error": "unauthorized"})

        try:
            claims = jwt.decode(
                authorization[7:],
                self.public_key,
                algorithms=["RS256"],
                audience=self.audience,
                issuer=self.issuer,
            )
        except jwt.InvalidTokenError as e:
            self.logger.warning("Access token rejected", error=str(e))
            return JSONResponse(status_code=401, content={"error": "unauthorized"})

        if required_scope not in str(claims.get("scope", "")).split():
            return JSONResponse(status_code=403, content={"error": "forbidden"})
        return None

