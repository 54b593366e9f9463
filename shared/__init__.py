"""
Shared utilities for the OpenID Connect relying party and its mocks.

This package aggregates common building blocks:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- circuit_breaker: Protection for calls to the identity provider
- base_service: FastAPI service skeleton with health, metrics and error handlers
- test_helpers: Key, token and transport factories for tests and mocks

Do not import from service_* packages into shared/.
"""
