"""
Builds the authorization request that starts the code flow.
"""

from urllib.parse import quote, urlencode

from pydantic import BaseModel

from ..discovery import ProviderMetadata


class AuthorizationRequestParams(BaseModel):
    """Parameters of a single authorization request, in wire order."""

    response_mode: str
    response_type: str
    scope: str
    client_id: str
    redirect_uri: str
    nonce: str
    audience: str


class AuthorizationRequestBuilder:
    """Pure builder over provider metadata and static client configuration.

    ``scope`` must list everything the resource API will need; it cannot be
    widened later without sending the user through authorization again.
    """

    def __init__(self,
                 metadata: ProviderMetadata,
                 client_id: str,
                 redirect_uri: str,
                 scope: str,
                 audience: str,
                 response_type: str = "code",
                 response_mode: str = "query"):
        self.metadata = metadata
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.scope = scope
        self.audience = audience
        self.response_type = response_type
        self.response_mode = response_mode

    def params(self, nonce: str) -> AuthorizationRequestParams:
        return AuthorizationRequestParams(
            response_mode=self.response_mode,
            response_type=self.response_type,
            scope=self.scope,
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            nonce=nonce,
            audience=self.audience,
        )

    def build(self, nonce: str) -> str:
        """Return the redirect URL for the authorization endpoint."""
        query = urlencode(self.params(nonce).model_dump(), quote_via=quote)
        endpoint = self.metadata.authorization_endpoint
        separator = "&" if "?" in endpoint else "?"
        return f"{endpoint}{separator}{query}"
