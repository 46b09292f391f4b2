"""FastAPI application factory.

``create_app`` assembles routes, exception handlers and the auth middleware.
``add_request_id_middleware`` must be applied after every other middleware:
Starlette runs middleware in reverse registration order, and the request id
has to be assigned before auth can reject a request.

Process-wide resources live on ``app.state`` and are created in the lifespan:
- httpx_client: shared AsyncClient for calendar provider calls
- push_sender: WebPushSender, or DisabledPushSender when VAPID keys are unset
Routes reach them through freefor.api.deps.
"""

import json
from contextlib import asynccontextmanager
from uuid import UUID

import httpx
from fastapi import FastAPI, Request

from freefor.api.routes import create_api_router
from freefor.auth.middleware import AuthMiddleware
from freefor.auth.verifier import SupabaseJwksVerifier, TokenVerifier
from freefor.config import get_settings
from freefor.db.session import get_session_factory, session_scope
from freefor.errors import ApiErrorCode
from freefor.logging import configure_logging, get_logger
from freefor.middleware.request_id import RequestIDMiddleware
from freefor.responses import error_json, register_exception_handlers
from freefor.services.profiles import ensure_user
from freefor.services.push import build_push_config, create_push_sender

configure_logging()

logger = get_logger(__name__)

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def create_bootstrap_callback():
    """Callback for AuthMiddleware that makes sure the caller has a users row.

    Runs once per authenticated request with its own short-lived session.
    """
    session_factory = get_session_factory()

    def bootstrap(user_id: UUID) -> UUID:
        with session_scope(session_factory) as db:
            return ensure_user(db, user_id)

    return bootstrap


def create_token_verifier() -> SupabaseJwksVerifier:
    settings = get_settings()
    return SupabaseJwksVerifier(
        jwks_url=settings.supabase_jwks_url,  # type: ignore[arg-type]
        issuer=settings.normalized_issuer,  # type: ignore[arg-type]
        audiences=settings.audience_list,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    app.state.httpx_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.calendar_http_timeout_s, connect=10.0),
        limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
    )
    # Tests install a fake sender before startup
    if app.state.push_sender is None:
        app.state.push_sender = create_push_sender(build_push_config(settings))
    logger.info("push_sender_initialized", enabled=app.state.push_sender.enabled)

    yield

    await app.state.httpx_client.aclose()
    logger.info("httpx_client_closed")


async def reject_malformed_json(request: Request, call_next):
    """Answer undecodable JSON bodies with E_INVALID_REQUEST before routing."""
    if request.method in _BODY_METHODS and "application/json" in request.headers.get(
        "content-type", ""
    ):
        body = await request.body()
        if body:
            try:
                json.loads(body)
            except json.JSONDecodeError:
                return error_json(ApiErrorCode.E_INVALID_REQUEST, "Malformed JSON body", 400)
    return await call_next(request)


def create_app(
    skip_auth_middleware: bool = False,
    token_verifier: TokenVerifier | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        skip_auth_middleware: Leave auth off so tests can add their own.
        token_verifier: Verifier to use instead of the Supabase JWKS one.
    """
    settings = get_settings()

    app = FastAPI(
        title="freefor API",
        description="Shared gaming availability between friends",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.push_sender = None

    register_exception_handlers(app)
    app.middleware("http")(reject_malformed_json)
    app.include_router(create_api_router())

    if not skip_auth_middleware:
        app.add_middleware(
            AuthMiddleware,
            verifier=token_verifier or create_token_verifier(),
            requires_internal_header=settings.requires_internal_header,
            internal_secret=settings.freefor_internal_secret,
            bootstrap_callback=create_bootstrap_callback(),
        )
        logger.info(
            "auth_middleware_enabled",
            env=settings.freefor_env.value,
            internal_header_required=settings.requires_internal_header,
        )

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Install RequestIDMiddleware as the outermost middleware.

    Args:
        app: The application, with all other middleware already added.
        log_requests: Emit one access log entry per request.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
