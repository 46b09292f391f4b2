"""Unit tests for token verifiers.

Tests the SupabaseJwksVerifier (with the JWKS client mocked out) and the
test-only MockJwtVerifier used by route tests.
"""

import time
from unittest.mock import MagicMock, patch
from uuid import uuid4

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.exceptions import PyJWKClientError

from freefor.auth.verifier import SupabaseJwksVerifier
from freefor.errors import ApiError, ApiErrorCode
from tests.helpers import mint_expired_token, mint_test_token
from tests.support.mock_verifier import MockJwtVerifier

ISSUER = "https://test.supabase.co/auth/v1"


def new_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def signing_key_for(private_key: rsa.RSAPrivateKey) -> MagicMock:
    signing_key = MagicMock()
    signing_key.key = private_key.public_key()
    return signing_key


def mint(private_key: rsa.RSAPrivateKey, sub: str, **overrides) -> str:
    now = int(time.time())
    payload = {
        "sub": sub,
        "iss": ISSUER,
        "aud": "authenticated",
        "iat": now,
        "exp": now + 3600,
        **overrides,
    }
    payload = {k: v for k, v in payload.items() if v is not None}
    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return jwt.encode(payload, pem, algorithm="RS256", headers={"kid": "test-key-id"})


class TestSupabaseJwksVerifier:
    """All tests replace the PyJWKClient; no HTTP is performed."""

    @pytest.fixture(scope="class")
    def private_key(self):
        return new_private_key()

    @pytest.fixture
    def verifier(self):
        # Trailing slash on the configured issuer is ignored
        return SupabaseJwksVerifier(
            jwks_url=f"{ISSUER}/.well-known/jwks.json",
            issuer=f"{ISSUER}/",
            audiences=["authenticated"],
        )

    @pytest.fixture
    def jwks_client(self, verifier, private_key):
        client = MagicMock()
        client.get_signing_key_from_jwt.return_value = signing_key_for(private_key)
        with patch.object(verifier, "_get_jwks_client", return_value=client):
            yield client

    def assert_unauthenticated(self, verifier, token: str, fragment: str | None = None):
        with pytest.raises(ApiError) as exc_info:
            verifier.verify(token)
        assert exc_info.value.code == ApiErrorCode.E_UNAUTHENTICATED
        if fragment:
            assert fragment in exc_info.value.message.lower()

    def test_valid_token(self, verifier, jwks_client, private_key):
        user_id = str(uuid4())

        claims = verifier.verify(mint(private_key, user_id))

        assert claims["sub"] == user_id
        assert claims["aud"] == "authenticated"

    def test_invalid_signature(self, verifier, jwks_client):
        self.assert_unauthenticated(verifier, mint(new_private_key(), str(uuid4())), "signature")

    def test_expired_token(self, verifier, jwks_client, private_key):
        token = mint(private_key, str(uuid4()), exp=int(time.time()) - 120)
        self.assert_unauthenticated(verifier, token, "expired")

    def test_clock_skew_accepted(self, verifier, jwks_client, private_key):
        user_id = str(uuid4())
        token = mint(private_key, user_id, exp=int(time.time()) - 30)

        assert verifier.verify(token)["sub"] == user_id

    def test_wrong_issuer(self, verifier, jwks_client, private_key):
        token = mint(private_key, str(uuid4()), iss="https://wrong.supabase.co")
        self.assert_unauthenticated(verifier, token, "issuer")

    def test_wrong_audience(self, verifier, jwks_client, private_key):
        token = mint(private_key, str(uuid4()), aud="wrong-audience")
        self.assert_unauthenticated(verifier, token, "audience")

    def test_missing_audience(self, verifier, jwks_client, private_key):
        self.assert_unauthenticated(verifier, mint(private_key, str(uuid4()), aud=None))

    def test_sub_must_be_uuid(self, verifier, jwks_client, private_key):
        self.assert_unauthenticated(verifier, mint(private_key, "not-a-uuid"), "uuid")

    def test_kid_miss_refreshes_once(self, verifier, jwks_client, private_key):
        user_id = str(uuid4())
        jwks_client.get_signing_key_from_jwt.side_effect = [
            PyJWKClientError("Unable to find a signing key that matches"),
            signing_key_for(private_key),
        ]

        claims = verifier.verify(mint(private_key, user_id))

        assert claims["sub"] == user_id
        assert jwks_client.get_signing_key_from_jwt.call_count == 2

    def test_kid_not_found_after_refresh(self, verifier, jwks_client, private_key):
        jwks_client.get_signing_key_from_jwt.side_effect = PyJWKClientError(
            "Unable to find a signing key that matches"
        )
        self.assert_unauthenticated(verifier, mint(private_key, str(uuid4())), "signing key")

    def test_jwks_unreachable(self, verifier, jwks_client):
        jwks_client.get_signing_key_from_jwt.side_effect = PyJWKClientError(
            "Fail to fetch data from the url"
        )

        with pytest.raises(ApiError) as exc_info:
            verifier.verify("some.fake.token")

        assert exc_info.value.code == ApiErrorCode.E_AUTH_UNAVAILABLE
        assert exc_info.value.status_code == 503


class TestMockJwtVerifier:
    def test_valid_token(self):
        user_id = str(uuid4())
        assert MockJwtVerifier().verify(mint_test_token(user_id))["sub"] == user_id

    @pytest.mark.parametrize(
        "token_factory",
        [
            lambda: mint_expired_token(uuid4()),
            lambda: mint_test_token(uuid4(), issuer="wrong-issuer"),
            lambda: mint_test_token(uuid4(), audience="wrong-audience"),
            lambda: mint_test_token("not-a-uuid"),
            lambda: mint(new_private_key(), str(uuid4()), iss="test-issuer", aud="test-audience"),
        ],
        ids=["expired", "issuer", "audience", "sub", "signature"],
    )
    def test_rejected(self, token_factory):
        with pytest.raises(ApiError) as exc_info:
            MockJwtVerifier().verify(token_factory())
        assert exc_info.value.code == ApiErrorCode.E_UNAUTHENTICATED
