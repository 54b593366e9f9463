"""
ID token validation for the relying party.
"""

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from jose import jwt
from jose.exceptions import JOSEError

from shared.errors import KeyResolutionError, ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..discovery import ProviderMetadata
from ..jwks import JWKSClient
from ..nonce import nonces_match

# Registered-claim checks are done here, not by jose, so both modes apply the same rules.
_SIGNATURE_ONLY = {
    "verify_signature": True,
    "verify_aud": False,
    "verify_iat": False,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
    "verify_at_hash": False,
}


class ValidationMode(str, Enum):
    """How much of a token is trusted before its claims are checked."""

    # Token came straight from the token endpoint over TLS. Never use for
    # tokens the browser submitted.
    CLAIMS_ONLY = "claims_only"
    # Token came through the browser; its signature is checked against the key set.
    SIGNATURE = "signature"


@dataclass(frozen=True)
class IdentityClaims:
    """Claims of an ID token that passed validation."""

    claims: Dict[str, Any] = field(repr=False)
    mode: ValidationMode = ValidationMode.CLAIMS_ONLY

    @property
    def subject(self) -> Optional[str]:
        return self.claims.get("sub")

    @property
    def nonce(self) -> Optional[str]:
        return self.claims.get("nonce")

    @property
    def audience(self) -> Any:
        return self.claims.get("aud")

    @property
    def expires_at(self) -> Optional[int]:
        return self.claims.get("exp")

    @property
    def issuer(self) -> Optional[str]:
        return self.claims.get("iss")

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.claims)


class TokenValidator:
    """Checks ID tokens in claims-only or signature-verified mode.

    Every failure raises the same ``ValidationError`` message; the check that
    failed is only logged and kept in ``details``.
    """

    def __init__(self,
                 metadata: ProviderMetadata,
                 client_id: str,
                 jwks_client: JWKSClient,
                 allowed_algorithms: Sequence[str] = ("RS256",),
                 leeway: int = 0,
                 clock: Callable[[], float] = time.time,
                 metrics: Optional[MetricsCollector] = None):
        self.metadata = metadata
        self.client_id = client_id
        self.jwks_client = jwks_client
        self.allowed_algorithms = list(allowed_algorithms)
        self.leeway = leeway
        self._clock = clock
        self.metrics = metrics
        self.logger = get_logger("rp.validator")

    async def validate(self,
                       token: str,
                       expected_nonce: Optional[str],
                       mode: ValidationMode = ValidationMode.SIGNATURE) -> IdentityClaims:
        """Validate ``token`` and return its claims."""
        try:
            if not token or not isinstance(token, str):
                raise ValidationError("token_missing")

            if mode == ValidationMode.SIGNATURE:
                claims = await self._verify_signature(token)
            else:
                claims = self._decode_unverified(token)

            self._check_claims(claims, expected_nonce)
        except ValidationError as e:
            self._record(mode, "failure")
            self.logger.warning(
                "ID token rejected",
                mode=mode.value,
                reason=e.reason,
                details=e.details
            )
            raise

        self._record(mode, "success")
        self.logger.info("ID token validated", mode=mode.value, sub=claims.get("sub"))
        return IdentityClaims(claims=claims, mode=mode)

    def _decode_unverified(self, token: str) -> Dict[str, Any]:
        try:
            claims = jwt.get_unverified_claims(token)
        except JOSEError as e:
            raise ValidationError("malformed_token", details={"error": str(e)}) from e
        if not isinstance(claims, dict):
            raise ValidationError("malformed_token")
        return claims

    async def _verify_signature(self, token: str) -> Dict[str, Any]:
        try:
            header = jwt.get_unverified_header(token)
        except JOSEError as e:
            raise ValidationError("malformed_token", details={"error": str(e)}) from e

        algorithm = header.get("alg")
        if algorithm not in self.allowed_algorithms:
            raise ValidationError("algorithm_not_allowed", details={"alg": algorithm})

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise ValidationError("kid_missing")

        key = await self.jwks_client.get_key(kid)
        if key is None:
            raise KeyResolutionError(kid)

        key_algorithm = key.get("alg")
        if key_algorithm and key_algorithm != algorithm:
            raise ValidationError(
                "algorithm_mismatch",
                details={"alg": algorithm, "key_alg": key_algorithm, "kid": kid}
            )

        try:
            claims = jwt.decode(token, key, algorithms=[algorithm], options=_SIGNATURE_ONLY)
        except JOSEError as e:
            raise ValidationError("signature_invalid", details={"kid": kid, "error": str(e)}) from e
        return claims

    def _check_claims(self, claims: Dict[str, Any], expected_nonce: Optional[str]) -> None:
        failed: List[str] = []

        if not self._audience_matches(claims.get("aud")):
            failed.append("audience_mismatch")

        nonce = claims.get("nonce")
        if not (expected_nonce and isinstance(nonce, str)
                and nonces_match(nonce, expected_nonce)):
            failed.append("nonce_mismatch")

        expires_at = claims.get("exp")
        if (not isinstance(expires_at, (int, float)) or isinstance(expires_at, bool)
                or (isinstance(expires_at, float) and not math.isfinite(expires_at))
                or not expires_at + self.leeway > self._clock()):
            failed.append("token_expired")

        if claims.get("iss") != self.metadata.issuer:
            failed.append("issuer_mismatch")

        if failed:
            raise ValidationError(failed[0], details={"failed_checks": failed})

    def _audience_matches(self, audience: Any) -> bool:
        if isinstance(audience, str):
            return audience == self.client_id
        if isinstance(audience, list):
            return self.client_id in audience
        return False

    def _record(self, mode: ValidationMode, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("token_validations_total", mode=mode.value, outcome=outcome)
