"""Authorization request construction."""

from .request_builder import AuthorizationRequestBuilder, AuthorizationRequestParams

__all__ = ["AuthorizationRequestBuilder", "AuthorizationRequestParams"]
