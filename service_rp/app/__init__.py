"""
Relying-party service package.

This package exposes the FastAPI application that signs users in with an
OpenID provider and calls the to-dos API on their behalf:

- app.main: Application entrypoint that wires routes and lifecycle.
- app.discovery: Provider metadata loaded once at startup.
- app.nonce: One-time nonces in signed cookies.
- app.authorization: Authorization request URL construction.
- app.exchange: Authorization code to token exchange.
- app.jwks: Signing key cache keyed by kid.
- app.validation: ID token claim and signature checks.
- app.session: Server-side session store and materializer.
- app.resources: Bearer-token calls to the resource API.

Design notes:
- Module import must not perform network calls. All IO happens in route
  handlers or the startup hook.
- Use the shared/ utilities for logging, metrics, config and errors.
"""
