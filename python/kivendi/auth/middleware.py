"""Authentication middleware for FastAPI.

Provides:
- AuthMiddleware: Global middleware for bearer token verification
- get_viewer / get_staff: Dependencies for accessing the authenticated identity
- authenticate_websocket: Token check for WebSocket upgrades, which bypass
  HTTP middleware
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Request, WebSocket
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers, QueryParams
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from kivendi.auth.verifier import TokenVerifier
from kivendi.db.models import StaffRole
from kivendi.errors import ApiError, ApiErrorCode
from kivendi.responses import error_response

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "authorization"
TOKEN_QUERY_PARAM = "token"
API_PREFIX = "/api/v1"
ADMIN_PREFIX = f"{API_PREFIX}/admin"

# Paths that don't require authentication
PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

# (method, path pattern) pairs reachable without a token
PUBLIC_ROUTES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("GET", re.compile(rf"^{API_PREFIX}/boost-offers(/\d+)?$")),
    ("GET", re.compile(rf"^{API_PREFIX}/boosted-ads$")),
    ("GET", re.compile(rf"^{API_PREFIX}/ads/\d+/boost-status$")),
    ("POST", re.compile(rf"^{API_PREFIX}/webhooks/kkiapay$")),
)

STAFF_ROLES = {role.value for role in StaffRole}


@dataclass
class Viewer:
    """Authenticated end-user identity.

    Attributes:
        user_id: The viewer's user id (from JWT sub claim).
    """

    user_id: int


@dataclass
class StaffViewer:
    """Authenticated staff identity.

    Attributes:
        admin_id: The staff account id (from JWT sub claim).
        role: admin or moderator.
    """

    admin_id: int
    role: str

    @property
    def user_id(self) -> str:
        return f"staff:{self.admin_id}"


# Returns None when the staff account does not exist, else whether it is active.
StaffStatusLookup = Callable[[int], bool | None]


def is_public_route(method: str, path: str) -> bool:
    if path in PUBLIC_PATHS:
        return True
    return any(method == m and pattern.match(path) for m, pattern in PUBLIC_ROUTES)


def extract_token(headers: Headers, query_params: QueryParams) -> str | None:
    """Extract a token from `Authorization: Bearer` or the `token` query param.

    Raises:
        ApiError(E_UNAUTHENTICATED): Authorization header is malformed.
    """
    auth_header = headers.get(AUTHORIZATION_HEADER)
    if auth_header:
        if not auth_header.lower().startswith("bearer "):
            raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid authorization header format")
        token = auth_header[7:].strip()
        if not token:
            raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid authorization header format")
        return token

    token = query_params.get(TOKEN_QUERY_PARAM)
    return token.strip() if token else None


def user_from_claims(claims: dict) -> Viewer:
    """Build an end-user identity, refusing staff tokens.

    Raises:
        ApiError(E_UNAUTHENTICATED): Claims belong to a staff token.
    """
    if claims.get("role") is not None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "User token required")
    return Viewer(user_id=claims["sub"])


class AuthMiddleware(BaseHTTPMiddleware):
    """Authentication middleware for FastAPI.

    Enforces:
    - Bearer token authentication on all non-public paths
    - Staff tokens (with an active account) on /api/v1/admin/*
    - User tokens everywhere else

    Order of checks:
    1. Skip if public route or CORS preflight
    2. Extract bearer token (header, then ?token=)
    3. Verify token via TokenVerifier
    4. Resolve staff or user identity
    5. Attach identity to request state
    """

    def __init__(
        self,
        app: ASGIApp,
        verifier: TokenVerifier,
        staff_status_lookup: StaffStatusLookup | None = None,
    ):
        """Initialize the auth middleware.

        Args:
            app: The ASGI application.
            verifier: TokenVerifier implementation for JWT verification.
            staff_status_lookup: Function(admin_id) -> is_active or None if unknown.
                Called for every admin request so deactivation takes effect
                before token expiry.
        """
        super().__init__(app)
        self.verifier = verifier
        self.staff_status_lookup = staff_status_lookup

    async def dispatch(self, request: Request, call_next) -> JSONResponse:
        """Process the request through auth checks."""
        if request.method == "OPTIONS" or is_public_route(request.method, request.url.path):
            return await call_next(request)

        try:
            token = extract_token(request.headers, request.query_params)
            if not token:
                logger.warning(
                    "auth_failure",
                    extra={"reason": "missing_token", "request_path": request.url.path},
                )
                raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")

            claims = self.verifier.verify(token)

            if request.url.path.startswith(ADMIN_PREFIX):
                request.state.staff = self._resolve_staff(claims)
            else:
                request.state.viewer = user_from_claims(claims)
        except ApiError as e:
            return self._error_json_response(e.code, e.message, e.status_code)

        return await call_next(request)

    def _resolve_staff(self, claims: dict) -> StaffViewer:
        role = claims.get("role")
        if role not in STAFF_ROLES:
            raise ApiError(ApiErrorCode.E_FORBIDDEN, "Staff token required")

        admin_id = claims["sub"]
        if self.staff_status_lookup is not None:
            try:
                is_active = self.staff_status_lookup(admin_id)
            except Exception as e:
                logger.exception("Staff lookup failed for admin %s: %s", admin_id, e)
                raise ApiError(ApiErrorCode.E_INTERNAL, "Internal server error") from e
            if is_active is None:
                raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Unknown staff account")
            if not is_active:
                raise ApiError(ApiErrorCode.E_STAFF_DISABLED, "Staff account disabled")

        return StaffViewer(admin_id=admin_id, role=role)

    def _error_json_response(
        self, code: ApiErrorCode, message: str, status_code: int
    ) -> JSONResponse:
        """Create a JSON error response."""
        return JSONResponse(
            status_code=status_code,
            content=error_response(code, message),
        )


def get_viewer(request: Request) -> Viewer:
    """FastAPI dependency to get the authenticated end-user.

    Raises:
        ApiError: If viewer is not set (middleware didn't run or path is public).
    """
    viewer = getattr(request.state, "viewer", None)
    if viewer is None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    return viewer


def get_staff(request: Request) -> StaffViewer:
    """FastAPI dependency to get the authenticated staff member."""
    staff = getattr(request.state, "staff", None)
    if staff is None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    return staff


def authenticate_websocket(websocket: WebSocket) -> Viewer:
    """Authenticate a WebSocket upgrade request.

    Browsers cannot set headers on WebSocket upgrades, so the token is
    usually passed as ?token=.

    Raises:
        ApiError(E_UNAUTHENTICATED): Missing or invalid token.
    """
    verifier: TokenVerifier | None = getattr(websocket.app.state, "token_verifier", None)
    if verifier is None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication unavailable")

    token = extract_token(websocket.headers, websocket.query_params)
    if not token:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    return user_from_claims(verifier.verify(token))
