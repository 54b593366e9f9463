"""
Relying-party web service.

Signs users in against an OpenID provider with the authorization code flow
and relays their access token to the to-dos resource API.
"""

import time
from typing import Callable, Dict, Optional

import httpx
from fastapi import Depends, Form, Request, Response
from fastapi.responses import RedirectResponse
from starlette.middleware.sessions import SessionMiddleware

from shared.base_service import BaseService
from shared.errors import AuthenticationError, DiscoveryError, ValidationError
from .authorization import AuthorizationRequestBuilder
from .discovery import ProviderDirectory
from .exchange import CodeExchangeClient, TokenSet
from .jwks import JWKSClient
from .nonce import NonceGuard
from .resources import DelegatedResourceClient
from .session import InMemorySessionStore, Session, SessionMaterializer
from .settings import RelyingPartySettings, get_settings
from .validation import TokenValidator, ValidationMode


class RelyingPartyService(BaseService):
    """Relying-party service implementation.

    Provider discovery runs in the startup hook; if it fails the application
    never starts serving. Components that need provider metadata are built
    right after discovery and are read-only afterwards.
    """

    def __init__(self,
                 settings: Optional[RelyingPartySettings] = None,
                 http_client: Optional[httpx.AsyncClient] = None,
                 clock: Callable[[], float] = time.time):
        settings = settings or get_settings()
        self.settings = settings
        self.clock = clock
        self.http = http_client
        self._owns_http = http_client is None

        super().__init__("rp", settings)

        self.directory: Optional[ProviderDirectory] = None
        self.request_builder: Optional[AuthorizationRequestBuilder] = None
        self.exchange_client: Optional[CodeExchangeClient] = None
        self.jwks_client: Optional[JWKSClient] = None
        self.token_validator: Optional[TokenValidator] = None
        self.resources: Optional[DelegatedResourceClient] = None

        self.nonce_guard = NonceGuard(
            settings.cookie_secret,
            cookie_name=settings.nonce_cookie_name,
            max_age=settings.nonce_max_age_seconds,
            secure=settings.cookie_secure,
            samesite=settings.cookie_samesite,
            clock=clock,
        )
        self.session_store = InMemorySessionStore(settings.session_max_age_seconds, clock=clock)
        self.materializer = SessionMaterializer()

        self.app.add_middleware(
            SessionMiddleware,
            secret_key=settings.session_secret,
            session_cookie=settings.session_cookie_name,
            max_age=settings.session_max_age_seconds,
            same_site=settings.cookie_samesite,
            https_only=settings.cookie_secure,
        )
        self._setup_rp_routes()

    async def on_startup(self) -> None:
        if self.http is None:
            self.http = httpx.AsyncClient(timeout=self.settings.http_timeout)

        self.directory = ProviderDirectory(self.http)
        try:
            metadata = await self.directory.initialize(self.settings.oidc_provider)
        except DiscoveryError as e:
            self.logger.error(
                "Unable to get OIDC endpoints, refusing to start",
                provider=self.settings.oidc_provider,
                details=e.details
            )
            await self._close_http()
            raise

        self.request_builder = AuthorizationRequestBuilder(
            metadata,
            client_id=self.settings.client_id,
            redirect_uri=self.settings.redirect_uri,
            scope=self.settings.scope,
            audience=self.settings.api_identifier,
            response_type=self.settings.response_type,
            response_mode=self.settings.response_mode,
        )
        self.exchange_client = CodeExchangeClient(
            self.http,
            metadata,
            client_id=self.settings.client_id,
            client_secret=self.settings.client_secret,
            redirect_uri=self.settings.redirect_uri,
        )
        self.jwks_client = JWKSClient(self.http, metadata.jwks_uri, metrics=self.metrics)
        self.token_validator = TokenValidator(
            metadata,
            client_id=self.settings.client_id,
            jwks_client=self.jwks_client,
            allowed_algorithms=self.settings.algorithms,
            leeway=self.settings.clock_skew_seconds,
            clock=self.clock,
            metrics=self.metrics,
        )
        self.resources = DelegatedResourceClient(
            self.http,
            self.settings.resource_api_url,
            metrics=self.metrics,
        )
        self.logger.info("Relying party ready", issuer=metadata.issuer)

    async def on_shutdown(self) -> None:
        await self._close_http()

    async def _close_http(self) -> None:
        if self._owns_http and self.http is not None:
            await self.http.aclose()
            self.http = None

    @property
    def code_flow_mode(self) -> ValidationMode:
        if self.settings.verify_code_flow_signature:
            return ValidationMode.SIGNATURE
        return ValidationMode.CLAIMS_ONLY

    def _session(self, request: Request) -> Session:
        return Session(request.session, self.session_store)

    def _reject(self, error: AuthenticationError, flow: str) -> Response:
        """Empty 401 for a failed login attempt; the nonce cookie goes either way."""
        self.logger.warning("Login attempt rejected", flow=flow, code=error.code, details=error.details)
        self.metrics.increment_counter("login_attempts_total", flow=flow, outcome="rejected")
        response = Response(status_code=401)
        self.nonce_guard.clear(response)
        return response

    def _accept(self, flow: str) -> Response:
        self.metrics.increment_counter("login_attempts_total", flow=flow, outcome="accepted")
        response = RedirectResponse("/profile", status_code=302)
        self.nonce_guard.clear(response)
        return response

    def _setup_rp_routes(self):
        """Set up login, callback and delegated resource routes."""

        session_dependency = Depends(self._session)

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "rp",
                "message": "OpenID Connect relying party",
                "version": "1.0.0",
                "login": "/login"
            }

        @self.app.get("/login")
        async def login():
            """Start the authorization code flow."""
            response = Response(status_code=302)
            nonce = self.nonce_guard.issue(response)
            response.headers["location"] = self.request_builder.build(nonce)
            self.metrics.increment_counter("login_attempts_total", flow="login", outcome="redirected")
            return response

        @self.app.get("/callback")
        async def code_callback(request: Request,
                                code: Optional[str] = None,
                                error: Optional[str] = None,
                                session: Session = session_dependency):
            """Code-flow return: exchange, claims check, session."""
            expected_nonce = self.nonce_guard.consume(request.cookies.get(self.nonce_guard.cookie_name))
            try:
                if expected_nonce is None:
                    raise ValidationError("nonce_cookie_invalid")
                if error:
                    raise AuthenticationError(
                        "Provider returned an error",
                        details={"error": error, "description": request.query_params.get("error_description")}
                    )
                tokens = await self.exchange_client.exchange(code)
                claims = await self.token_validator.validate(tokens.id_token, expected_nonce, self.code_flow_mode)
            except AuthenticationError as e:
                return self._reject(e, flow="code")

            self.materializer.establish(session, tokens, claims)
            return self._accept(flow="code")

        @self.app.post("/callback")
        async def token_callback(request: Request,
                                 id_token: Optional[str] = Form(None),
                                 session: Session = session_dependency):
            """Token-in-body return: signature-verified validation, session."""
            expected_nonce = self.nonce_guard.consume(request.cookies.get(self.nonce_guard.cookie_name))
            try:
                if expected_nonce is None:
                    raise ValidationError("nonce_cookie_invalid")
                claims = await self.token_validator.validate(id_token, expected_nonce, ValidationMode.SIGNATURE)
            except AuthenticationError as e:
                return self._reject(e, flow="form_post")

            self.materializer.establish(session, TokenSet(id_token=id_token), claims)
            return self._accept(flow="form_post")

        @self.app.get("/profile")
        async def profile(session: Session = session_dependency):
            """Signed-in user's ID token and its claims."""
            state = session.state
            if state is None:
                raise AuthenticationError("No session")
            return {
                "id_token": state.id_token,
                "decoded_id_token": state.decoded_id_token
            }

        @self.app.get("/to-dos")
        async def list_to_dos(session: Session = session_dependency):
            """List the user's to-dos from the resource API."""
            to_dos = await self.resources.get_json(session)
            return {"to_dos": to_dos}

        @self.app.get("/remove-to-do/{to_do_id}")
        async def remove_to_do(to_do_id: str, session: Session = session_dependency):
            """Delete a to-do upstream, then return the refreshed list."""
            await self.resources.delete(session, to_do_id)
            to_dos = await self.resources.get_json(session)
            return {"to_dos": to_dos}

    async def _check_dependencies(self) -> Dict[str, str]:
        """Report whether provider metadata is loaded."""
        return {
            "idp": "ok" if self.directory is not None and self.directory.initialized else "error"
        }


def create_app():
    """Create FastAPI application."""
    service = RelyingPartyService()
    return service.app


if __name__ == "__main__":
    service = RelyingPartyService()
    service.run()
