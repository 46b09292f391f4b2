"""Authentication middleware for FastAPI.

Provides:
- AuthMiddleware: bearer token + internal header verification
- get_viewer: dependency for routes that require a signed-in viewer
- get_optional_viewer: dependency for public reads that may be anonymous

Public reads (profile browsing, public calendars, overlap queries) accept
anonymous requests. A bearer token sent to them is still verified, and an
invalid one is rejected rather than silently ignored.
"""

import hmac
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from freefor.auth.verifier import TokenVerifier, require_uuid_sub
from freefor.errors import ApiError, ApiErrorCode
from freefor.logging import get_logger, set_user_id
from freefor.responses import error_json

logger = get_logger(__name__)

AUTHORIZATION_HEADER = "authorization"
INTERNAL_HEADER = "x-freefor-internal"

# Paths that skip authentication entirely
PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

# (method, path pattern) pairs where a bearer token is optional
OPTIONAL_AUTH_ROUTES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("GET", re.compile(r"^/profiles(/.*)?$")),
    ("GET", re.compile(r"^/users/[^/]+/availability$")),
    ("POST", re.compile(r"^/availability/overlap$")),
)


@dataclass
class Viewer:
    """Authenticated viewer identity.

    Attributes:
        user_id: The viewer's user ID (from JWT sub claim).
    """

    user_id: UUID


def is_optional_auth(method: str, path: str) -> bool:
    return any(m == method and pattern.match(path) for m, pattern in OPTIONAL_AUTH_ROUTES)


class AuthMiddleware(BaseHTTPMiddleware):
    """Authentication middleware.

    Order of checks:
    1. Skip if public path
    2. Verify internal header (if required)
    3. Extract bearer token (optional on public reads)
    4. Verify token via TokenVerifier
    5. Call bootstrap callback to ensure the user row exists
    6. Attach Viewer to request state
    """

    def __init__(
        self,
        app: ASGIApp,
        verifier: TokenVerifier,
        requires_internal_header: bool = False,
        internal_secret: str | None = None,
        bootstrap_callback: Callable[[UUID], UUID] | None = None,
    ):
        """Initialize the auth middleware.

        Args:
            app: The ASGI application.
            verifier: TokenVerifier implementation for JWT verification.
            requires_internal_header: Whether to enforce X-Freefor-Internal header.
            internal_secret: The expected internal secret value.
            bootstrap_callback: Function(user_id) -> user_id, called after
                successful auth to ensure the user exists.
        """
        super().__init__(app)
        self.verifier = verifier
        self.requires_internal_header = requires_internal_header
        self.internal_secret = internal_secret
        self.bootstrap_callback = bootstrap_callback

    async def dispatch(self, request: Request, call_next) -> JSONResponse:
        path = request.url.path
        if path in PUBLIC_PATHS:
            return await call_next(request)

        if self.requires_internal_header:
            failure = self._verify_internal_header(request)
            if failure:
                return failure

        auth_header = request.headers.get(AUTHORIZATION_HEADER)
        if not auth_header and is_optional_auth(request.method, path):
            return await call_next(request)

        token, failure = self._extract_bearer_token(auth_header)
        if failure:
            return failure

        try:
            payload = self.verifier.verify(token)
            user_id = require_uuid_sub(payload)
        except ApiError as e:
            return error_json(e.code, e.message, e.status_code)

        if self.bootstrap_callback:
            try:
                self.bootstrap_callback(user_id)
            except Exception:
                logger.exception("user_bootstrap_failed")
                return error_json(ApiErrorCode.E_INTERNAL, "Internal server error", 500)

        request.state.viewer = Viewer(user_id=user_id)
        set_user_id(str(user_id))

        return await call_next(request)

    def _verify_internal_header(self, request: Request) -> JSONResponse | None:
        """Constant-time check of the internal header. Returns an error response or None."""
        header_value = request.headers.get(INTERNAL_HEADER)

        if not self.internal_secret:
            # Validated at startup for staging/prod
            logger.error("internal_secret_missing")
            return error_json(ApiErrorCode.E_INTERNAL, "Internal server error", 500)

        if header_value is None or not hmac.compare_digest(
            header_value.encode(), self.internal_secret.encode()
        ):
            logger.warning(
                "auth_failure",
                reason=(
                    "internal_header_missing"
                    if header_value is None
                    else "internal_header_mismatch"
                ),
            )
            return error_json(
                ApiErrorCode.E_INTERNAL_ONLY, "Internal API access required", 403
            )

        return None

    def _extract_bearer_token(self, auth_header: str | None) -> tuple[str, JSONResponse | None]:
        if not auth_header:
            logger.warning("auth_failure", reason="missing_header")
            return "", error_json(
                ApiErrorCode.E_UNAUTHENTICATED, "Authentication required", 401
            )

        scheme, _, token = auth_header.partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            logger.warning("auth_failure", reason="invalid_header_format")
            return "", error_json(
                ApiErrorCode.E_UNAUTHENTICATED, "Invalid authorization header format", 401
            )

        return token, None


def get_viewer(request: Request) -> Viewer:
    """FastAPI dependency for the authenticated viewer.

    Raises:
        ApiError(E_UNAUTHENTICATED): If no viewer was attached by the middleware.
    """
    viewer = getattr(request.state, "viewer", None)
    if viewer is None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    return viewer


def get_optional_viewer(request: Request) -> Viewer | None:
    """FastAPI dependency for public reads; None for anonymous callers."""
    return getattr(request.state, "viewer", None)


ViewerDep = Annotated[Viewer, Depends(get_viewer)]
OptionalViewerDep = Annotated[Viewer | None, Depends(get_optional_viewer)]
