"""Bearer token verification.

Provides:
- TokenVerifier: Protocol for token verification
- SupabaseJwksVerifier: Verifier using Supabase JWKS (used in all environments)

Test-only verifiers live in tests/support/mock_verifier.py.
"""

import threading
from typing import Any, Protocol
from uuid import UUID

import jwt
from jwt import PyJWKClient
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    PyJWKClientError,
)

from freefor.errors import ApiError, ApiErrorCode
from freefor.logging import get_logger

logger = get_logger(__name__)

# Clock skew allowance in seconds
CLOCK_SKEW_SECONDS = 60

# Most specific first; InvalidTokenError is the base of all the others
_DECODE_FAILURES: tuple[tuple[type[InvalidTokenError], str, str], ...] = (
    (ExpiredSignatureError, "expired_token", "Token expired"),
    (InvalidSignatureError, "invalid_signature", "Invalid token signature"),
    (InvalidIssuerError, "invalid_issuer", "Invalid token issuer"),
    (InvalidAudienceError, "invalid_audience", "Invalid token audience"),
    (DecodeError, "decode_error", "Invalid token format"),
    (InvalidTokenError, "invalid_token", "Invalid token"),
)


class TokenVerifier(Protocol):
    """Verifies a bearer token and returns its decoded claims.

    Raises:
        ApiError(E_UNAUTHENTICATED): Token is invalid, expired, or malformed.
        ApiError(E_AUTH_UNAVAILABLE): Key infrastructure is unreachable.
    """

    def verify(self, token: str) -> dict[str, Any]: ...


def require_uuid_sub(payload: dict[str, Any]) -> UUID:
    """The token subject as a UUID.

    Raises:
        ApiError(E_UNAUTHENTICATED): If sub is missing or not a UUID.
    """
    sub = payload.get("sub")
    if not sub:
        logger.warning("auth_failure", reason="missing_sub")
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid token: missing sub")
    try:
        return UUID(str(sub))
    except ValueError as e:
        logger.warning("auth_failure", reason="invalid_sub")
        raise ApiError(
            ApiErrorCode.E_UNAUTHENTICATED, "Invalid token: sub is not a valid UUID"
        ) from e


class SupabaseJwksVerifier:
    """Verifies Supabase-issued JWTs against the project's JWKS.

    Checks signature (RS256 or ES256, key chosen by kid), exp with 60s skew,
    issuer (trailing slash ignored), audience membership, and a UUID sub.
    An unknown kid triggers one JWKS refresh before the token is rejected.
    """

    def __init__(
        self,
        jwks_url: str,
        issuer: str,
        audiences: list[str],
        cache_ttl: int = 3600,
    ):
        self.jwks_url = jwks_url
        self.issuer = issuer.rstrip("/")
        self.audiences = audiences
        self.cache_ttl = cache_ttl

        self._jwks_client: PyJWKClient | None = None
        self._jwks_lock = threading.Lock()

    def _new_client(self) -> PyJWKClient:
        return PyJWKClient(self.jwks_url, cache_keys=True, lifespan=self.cache_ttl)

    def _get_jwks_client(self, refresh: bool = False) -> PyJWKClient:
        with self._jwks_lock:
            if self._jwks_client is None or refresh:
                self._jwks_client = self._new_client()
            return self._jwks_client

    def _get_signing_key(self, token: str) -> Any:
        try:
            return self._get_jwks_client().get_signing_key_from_jwt(token)
        except PyJWKClientError as e:
            if "Unable to find" not in str(e) and "kid" not in str(e).lower():
                raise
        # Keys may have rotated: refresh once and retry
        logger.info("jwks_refresh", reason="kid_miss")
        try:
            return self._get_jwks_client(refresh=True).get_signing_key_from_jwt(token)
        except PyJWKClientError as e:
            logger.warning("auth_failure", reason="kid_not_found")
            raise ApiError(
                ApiErrorCode.E_UNAUTHENTICATED, "Invalid token: signing key not found"
            ) from e

    def verify(self, token: str) -> dict[str, Any]:
        try:
            signing_key = self._get_signing_key(token)
        except PyJWKClientError as e:
            logger.warning("auth_failure", reason="jwks_unavailable", error=str(e))
            raise ApiError(
                ApiErrorCode.E_AUTH_UNAVAILABLE, "Authentication service unavailable"
            ) from e

        try:
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256", "ES256"],
                audience=self.audiences,
                issuer=self.issuer,
                leeway=CLOCK_SKEW_SECONDS,
                options={"require": ["exp", "iss", "sub"], "verify_aud": True},
            )
        except InvalidTokenError as e:
            for exc_type, reason, message in _DECODE_FAILURES:
                if isinstance(e, exc_type):
                    logger.warning("auth_failure", reason=reason)
                    raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, message) from e
            raise

        require_uuid_sub(payload)
        return payload
