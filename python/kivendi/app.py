"""FastAPI application creation and configuration.

This module creates and configures the FastAPI application instance.
It registers exception handlers, CORS, auth middleware, request-id
middleware and routes.

Token Verification:
- Every environment uses JwtTokenVerifier with the shared JWT_SECRET
- The verifier is also stored on app.state for WebSocket authentication,
  since upgrades bypass HTTP middleware

Middleware Ordering (Critical):
- Middleware runs in reverse order of registration
- RequestIDMiddleware is added LAST so it runs FIRST (outermost)
- This ensures all requests (including auth failures) get X-Request-ID

Actual execution order per request:
1. RequestIDMiddleware (sets request_id, starts timer)
2. CORSMiddleware (answers preflights)
3. AuthMiddleware (verifies token, sets viewer or staff)
4. Route handler

Collaborator Lifecycle:
- The payment gateway client, push transport, object store and chat hub
  are created in the lifespan and stored on app.state
- Tests pass their own collaborators to create_app(); the lifespan only
  builds what was not supplied
- The in-process boost expiration loop runs every BOOST_EXPIRY_INTERVAL_S
  while RUN_BOOST_EXPIRY_LOOP is on
- On shutdown the loop is cancelled, sockets are closed, detached work is
  drained and the gateway's HTTP client is closed
"""

import asyncio
import json
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from kivendi.api.routes import create_api_router
from kivendi.auth.middleware import AuthMiddleware, StaffStatusLookup
from kivendi.auth.verifier import JwtTokenVerifier, TokenVerifier
from kivendi.background import drain_detached
from kivendi.config import get_settings
from kivendi.db.session import open_session
from kivendi.errors import ApiError, ApiErrorCode
from kivendi.logging import configure_logging, get_logger
from kivendi.middleware.request_id import RequestIDMiddleware
from kivendi.payments.kkiapay import KkiapayClient, PaymentGateway
from kivendi.push.transport import PushTransport, get_push_transport
from kivendi.realtime.hub import ChatHub
from kivendi.responses import (
    api_error_handler,
    error_response,
    http_exception_handler,
    unhandled_exception_handler,
)
from kivendi.services.staff import staff_is_active
from kivendi.storage.client import ObjectStoreBase, get_object_store
from kivendi.tasks.expire_boosts import run_boost_expiry

# Configure structured logging at import time
configure_logging()

logger = get_logger(__name__)


def create_staff_status_lookup() -> StaffStatusLookup:
    """Create the staff lookup used by the auth middleware.

    Each call opens its own session so deactivating a staff account takes
    effect on their next request.
    """

    def lookup(admin_id: int) -> bool | None:
        with open_session() as db:
            return staff_is_active(db, admin_id)

    return lookup


def create_token_verifier() -> JwtTokenVerifier:
    settings = get_settings()
    return JwtTokenVerifier(settings.jwt_secret, leeway=settings.jwt_leeway_s)


def create_payment_gateway() -> KkiapayClient:
    settings = get_settings()
    return KkiapayClient(
        settings.kkiapay_private_key,
        sandbox=settings.kkiapay_sandbox,
        timeout_s=settings.kkiapay_timeout_s,
        max_retries=settings.kkiapay_max_retries,
    )


async def boost_expiry_loop(interval_s: float) -> None:
    """Run the expiration job at startup and then every interval_s."""
    while True:
        try:
            result = await run_in_threadpool(run_boost_expiry)
            logger.debug("boost_expiry_loop_tick", **result)
        except Exception:
            logger.exception("boost_expiry_loop_failed")
        await asyncio.sleep(interval_s)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle resources."""
    settings = get_settings()
    state = app.state

    owns_gateway = state.payment_gateway is None
    if owns_gateway:
        state.payment_gateway = create_payment_gateway()
    if state.push_transport is None:
        state.push_transport = get_push_transport(settings)
    if state.object_store is None:
        state.object_store = get_object_store(settings)
    state.chat_hub = ChatHub()

    expiry_task = None
    if state.run_expiry_loop:
        expiry_task = asyncio.create_task(boost_expiry_loop(settings.boost_expiry_interval_s))
        logger.info("boost_expiry_loop_started", interval_s=settings.boost_expiry_interval_s)

    yield

    if expiry_task is not None:
        expiry_task.cancel()
        try:
            await expiry_task
        except asyncio.CancelledError:
            pass
    await state.chat_hub.close_all()
    await drain_detached()
    if owns_gateway:
        state.payment_gateway.close()
        state.payment_gateway = None
    logger.info("app_shutdown_complete")


def create_app(
    skip_auth_middleware: bool = False,
    token_verifier: TokenVerifier | None = None,
    payment_gateway: PaymentGateway | None = None,
    push_transport: PushTransport | None = None,
    object_store: ObjectStoreBase | None = None,
    run_expiry_loop: bool | None = None,
    staff_status_lookup: StaffStatusLookup | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        skip_auth_middleware: If True, skip adding auth middleware (for testing).
        token_verifier: Optional custom token verifier (for testing).
        payment_gateway: Optional gateway; built from settings when None.
        push_transport: Optional push transport; built from settings when None.
        object_store: Optional object store; built from settings when None.
        run_expiry_loop: Override RUN_BOOST_EXPIRY_LOOP.
        staff_status_lookup: Optional staff lookup; reads the admins table when None.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Kivendi API",
        description="Backend API for Kivendi - a classifieds marketplace",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    verifier = token_verifier or create_token_verifier()
    app.state.token_verifier = verifier
    app.state.payment_gateway = payment_gateway
    app.state.push_transport = push_transport
    app.state.object_store = object_store
    app.state.run_expiry_loop = (
        settings.run_boost_expiry_loop if run_expiry_loop is None else run_expiry_loop
    )

    # Register exception handlers
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors (including malformed JSON)."""
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"Invalid request: {field}" if field else "Invalid request body"
        return JSONResponse(
            status_code=400,
            content=error_response(ApiErrorCode.E_INVALID_REQUEST, message),
        )

    @app.middleware("http")
    async def catch_json_decode_errors(request: Request, call_next):
        """Catch JSON decode errors before they reach route handlers.

        The payment webhook is exempt: its signature is checked first.
        """
        if request.method in ("POST", "PUT", "PATCH") and not request.url.path.endswith(
            "/webhooks/kkiapay"
        ):
            content_type = request.headers.get("content-type", "")
            if "application/json" in content_type:
                body = await request.body()
                if body:
                    try:
                        json.loads(body)
                    except json.JSONDecodeError:
                        return JSONResponse(
                            status_code=400,
                            content=error_response(
                                ApiErrorCode.E_INVALID_REQUEST, "Malformed JSON body"
                            ),
                        )
        return await call_next(request)

    app.include_router(create_api_router())

    if not skip_auth_middleware:
        app.add_middleware(
            AuthMiddleware,
            verifier=verifier,
            staff_status_lookup=staff_status_lookup or create_staff_status_lookup(),
        )
        logger.info("auth_middleware_enabled", env=settings.kivendi_env.value)

    origins = settings.cors_origin_list
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials="*" not in origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        logger.info("cors_middleware_enabled", origins=origins)

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    This should be called AFTER all other middleware is added, so it runs FIRST.
    This ensures every response includes X-Request-ID, including auth failures.

    Args:
        app: The FastAPI application.
        log_requests: Whether to log access entries for each request.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
    logger.info("request_id_middleware_enabled")
