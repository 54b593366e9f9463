"""
Unit tests for TokenValidator.
"""

import base64
import json
from itertools import combinations

import httpx
import pytest

from service_rp.app.discovery import ProviderMetadata
from service_rp.app.jwks import JWKSClient
from service_rp.app.validation import IdentityClaims, TokenValidator, ValidationMode
from shared.errors import KeyResolutionError, ValidationError
from shared.metrics import MetricsCollector
from shared.test_helpers import (
    DEFAULT_CLIENT_ID,
    DEFAULT_ISSUER,
    discovery_document,
    generate_rsa_key,
    id_token_claims,
    jwks_document,
    sign_token,
)

NOW = 1_700_000_000
NONCE = "0123456789abcdef0123456789abcdef"

CHECK_BREAKERS = {
    "audience_mismatch": {"aud": "someone-else"},
    "nonce_mismatch": {"nonce": "f" * 32},
    "token_expired": {"exp": NOW - 1},
    "issuer_mismatch": {"iss": "https://evil.example.com/"},
}


def _unsigned(claims, header=None) -> str:
    def encode(part):
        return base64.urlsafe_b64encode(json.dumps(part).encode()).rstrip(b"=").decode()
    return f"{encode(header or {'alg': 'none', 'typ': 'JWT'})}.{encode(claims)}."


@pytest.fixture(scope="module")
def signing_key():
    return generate_rsa_key("kid-1")


@pytest.fixture
def fetches():
    return []


@pytest.fixture
def validator(signing_key, fetches):
    def handler(request):
        fetches.append(request)
        return httpx.Response(200, json=jwks_document(signing_key))

    metadata = ProviderMetadata.from_document(discovery_document("https://idp.example.com"))
    jwks_client = JWKSClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)), metadata.jwks_uri)
    return TokenValidator(
        metadata,
        client_id=DEFAULT_CLIENT_ID,
        jwks_client=jwks_client,
        allowed_algorithms=["RS256"],
        clock=lambda: NOW,
        metrics=MetricsCollector("rp"),
    )


def _claims(**overrides):
    claims = id_token_claims(NONCE, now=NOW)
    claims.update(overrides)
    return claims


class TestClaimChecks:
    """Claim checks, applied identically in both modes."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode", list(ValidationMode))
    async def test_valid_token_accepted(self, validator, signing_key, mode):
        token = sign_token(signing_key, _claims())

        claims = await validator.validate(token, NONCE, mode)

        assert isinstance(claims, IdentityClaims)
        assert claims.mode == mode
        assert claims.subject == "auth0|user1"
        assert claims.nonce == NONCE
        assert claims.issuer == DEFAULT_ISSUER
        assert claims.to_dict()["email"] == "john.doe@example.com"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode", list(ValidationMode))
    @pytest.mark.parametrize("check", sorted(CHECK_BREAKERS))
    async def test_each_check_rejects_on_its_own(self, validator, signing_key, mode, check):
        token = sign_token(signing_key, _claims(**CHECK_BREAKERS[check]))

        with pytest.raises(ValidationError) as exc_info:
            await validator.validate(token, NONCE, mode)

        assert exc_info.value.details["failed_checks"] == [check]
        assert exc_info.value.message == "Token validation failed"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("checks", list(combinations(sorted(CHECK_BREAKERS), 2)))
    async def test_combined_violations_all_reported(self, validator, signing_key, checks):
        overrides = {}
        for check in checks:
            overrides.update(CHECK_BREAKERS[check])
        token = sign_token(signing_key, _claims(**overrides))

        with pytest.raises(ValidationError) as exc_info:
            await validator.validate(token, NONCE, ValidationMode.CLAIMS_ONLY)

        assert sorted(exc_info.value.details["failed_checks"]) == sorted(checks)

    @pytest.mark.asyncio
    async def test_expiry_boundary(self, validator, signing_key):
        """A token whose exp equals the current time is already expired."""
        token = sign_token(signing_key, _claims(exp=NOW))
        with pytest.raises(ValidationError) as exc_info:
            await validator.validate(token, NONCE, ValidationMode.CLAIMS_ONLY)
        assert exc_info.value.reason == "token_expired"

        token = sign_token(signing_key, _claims(exp=NOW + 1))
        await validator.validate(token, NONCE, ValidationMode.CLAIMS_ONLY)

    @pytest.mark.asyncio
    async def test_leeway_extends_expiry(self, validator, signing_key):
        validator.leeway = 30
        token = sign_token(signing_key, _claims(exp=NOW - 10))
        await validator.validate(token, NONCE, ValidationMode.CLAIMS_ONLY)

    @pytest.mark.asyncio
    async def test_audience_list_containing_client(self, validator, signing_key):
        token = sign_token(signing_key, _claims(aud=["https://to-dos.example.com", DEFAULT_CLIENT_ID]))
        claims = await validator.validate(token, NONCE, ValidationMode.CLAIMS_ONLY)
        assert DEFAULT_CLIENT_ID in claims.audience

    @pytest.mark.asyncio
    async def test_audience_list_without_client(self, validator, signing_key):
        token = sign_token(signing_key, _claims(aud=["https://to-dos.example.com"]))
        with pytest.raises(ValidationError) as exc_info:
            await validator.validate(token, NONCE, ValidationMode.CLAIMS_ONLY)
        assert exc_info.value.reason == "audience_mismatch"

    @pytest.mark.asyncio
    async def test_missing_expected_nonce_rejects(self, validator, signing_key):
        token = sign_token(signing_key, _claims())
        with pytest.raises(ValidationError) as exc_info:
            await validator.validate(token, None, ValidationMode.CLAIMS_ONLY)
        assert exc_info.value.reason == "nonce_mismatch"

    @pytest.mark.asyncio
    async def test_non_numeric_exp_rejects(self, validator, signing_key):
        token = sign_token(signing_key, _claims(exp="tomorrow"))
        with pytest.raises(ValidationError) as exc_info:
            await validator.validate(token, NONCE, ValidationMode.CLAIMS_ONLY)
        assert exc_info.value.reason == "token_expired"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode", list(ValidationMode))
    @pytest.mark.parametrize("exp", [float("nan"), float("inf"), float("-inf")])
    async def test_non_finite_exp_rejects(self, validator, signing_key, mode, exp):
        token = sign_token(signing_key, _claims(exp=exp))
        with pytest.raises(ValidationError) as exc_info:
            await validator.validate(token, NONCE, mode)
        assert exc_info.value.details["failed_checks"] == ["token_expired"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("claimed, expected", [
        ("\u00e9" * 32, NONCE),
        (NONCE, "\u00e9" * 32),
        ("\u00e9" * 32, "\u00e8" * 32),
        ("\ud800", NONCE),
    ])
    async def test_non_ascii_nonce_rejects(self, validator, signing_key, claimed, expected):
        token = sign_token(signing_key, _claims(nonce=claimed))
        with pytest.raises(ValidationError) as exc_info:
            await validator.validate(token, expected, ValidationMode.CLAIMS_ONLY)
        assert exc_info.value.reason == "nonce_mismatch"
        assert validator.metrics.get_sample(
            "token_validations_total", mode="claims_only", outcome="failure") == 1.0

    @pytest.mark.asyncio
    async def test_non_ascii_nonce_matches_itself(self, validator, signing_key):
        nonce = "\u00e9" * 32
        token = sign_token(signing_key, _claims(nonce=nonce))
        claims = await validator.validate(token, nonce, ValidationMode.CLAIMS_ONLY)
        assert claims.nonce == nonce

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
    async def test_malformed_token(self, validator, token):
        with pytest.raises(ValidationError):
            await validator.validate(token, NONCE, ValidationMode.CLAIMS_ONLY)

    @pytest.mark.asyncio
    async def test_claims_only_ignores_signature(self, validator):
        """Claims-only mode trusts the transport, not the signature."""
        claims = await validator.validate(_unsigned(_claims()), NONCE, ValidationMode.CLAIMS_ONLY)
        assert claims.mode == ValidationMode.CLAIMS_ONLY

    @pytest.mark.asyncio
    async def test_outcomes_recorded(self, validator, signing_key):
        await validator.validate(sign_token(signing_key, _claims()), NONCE, ValidationMode.SIGNATURE)
        with pytest.raises(ValidationError):
            await validator.validate(sign_token(signing_key, _claims(nonce="x")), NONCE, ValidationMode.SIGNATURE)

        metrics = validator.metrics
        assert metrics.get_sample("token_validations_total", mode="signature", outcome="success") == 1.0
        assert metrics.get_sample("token_validations_total", mode="signature", outcome="failure") == 1.0


class TestSignatureMode:
    """Signature-verified validation."""

    @pytest.mark.asyncio
    async def test_unknown_kid_raises_key_resolution_error(self, validator, signing_key, fetches):
        token = sign_token(signing_key, _claims(), kid="unknown-kid")

        with pytest.raises(KeyResolutionError) as exc_info:
            await validator.validate(token, NONCE, ValidationMode.SIGNATURE)

        assert exc_info.value.details["kid"] == "unknown-kid"
        assert len(fetches) == 1

    @pytest.mark.asyncio
    async def test_signature_by_other_key_rejected(self, validator):
        impostor = generate_rsa_key("kid-1")
        token = sign_token(impostor, _claims())

        with pytest.raises(ValidationError) as exc_info:
            await validator.validate(token, NONCE, ValidationMode.SIGNATURE)

        assert exc_info.value.reason == "signature_invalid"

    @pytest.mark.asyncio
    async def test_tampered_payload_rejected(self, validator, signing_key):
        header, _, signature = sign_token(signing_key, _claims()).split(".")
        forged_payload = _unsigned(_claims(sub="auth0|admin")).split(".")[1]

        with pytest.raises(ValidationError):
            await validator.validate(f"{header}.{forged_payload}.{signature}", NONCE, ValidationMode.SIGNATURE)

    @pytest.mark.asyncio
    async def test_unsigned_token_rejected(self, validator, fetches):
        with pytest.raises(ValidationError) as exc_info:
            await validator.validate(_unsigned(_claims()), NONCE, ValidationMode.SIGNATURE)

        assert exc_info.value.reason == "algorithm_not_allowed"
        assert fetches == []

    @pytest.mark.asyncio
    async def test_symmetric_algorithm_rejected(self, validator):
        token = _unsigned(_claims(), header={"alg": "HS256", "typ": "JWT", "kid": "kid-1"})
        with pytest.raises(ValidationError) as exc_info:
            await validator.validate(token, NONCE, ValidationMode.SIGNATURE)
        assert exc_info.value.reason == "algorithm_not_allowed"

    @pytest.mark.asyncio
    async def test_missing_kid_rejected(self, validator):
        token = _unsigned(_claims(), header={"alg": "RS256", "typ": "JWT"})
        with pytest.raises(ValidationError) as exc_info:
            await validator.validate(token, NONCE, ValidationMode.SIGNATURE)
        assert exc_info.value.reason == "kid_missing"

    @pytest.mark.asyncio
    async def test_signature_checked_before_claims(self, validator, signing_key):
        """A forged token with bad claims fails on its signature, not its claims."""
        impostor = generate_rsa_key("kid-1")
        token = sign_token(impostor, _claims(aud="someone-else"))

        with pytest.raises(ValidationError) as exc_info:
            await validator.validate(token, NONCE, ValidationMode.SIGNATURE)

        assert exc_info.value.reason == "signature_invalid"
