"""Authentication and authorization module.

This module provides:
- Token verification (shared-secret JWT verifier)
- Auth middleware for FastAPI and WebSocket authentication
- Staff capability table
"""

from kivendi.auth.capabilities import Capability, has_capability, require_capability
from kivendi.auth.middleware import (
    AuthMiddleware,
    StaffViewer,
    Viewer,
    authenticate_websocket,
    get_staff,
    get_viewer,
)
from kivendi.auth.verifier import JwtTokenVerifier, TokenVerifier

__all__ = [
    "AuthMiddleware",
    "Capability",
    "JwtTokenVerifier",
    "StaffViewer",
    "TokenVerifier",
    "Viewer",
    "authenticate_websocket",
    "get_staff",
    "get_viewer",
    "has_capability",
    "require_capability",
]
