"""Authentication and authorization module.

This module provides:
- Token verification (Supabase JWKS verifier)
- Auth middleware for FastAPI
- Request state with viewer identity
"""

from freefor.auth.middleware import AuthMiddleware, Viewer, get_optional_viewer, get_viewer
from freefor.auth.verifier import SupabaseJwksVerifier, TokenVerifier

__all__ = [
    "AuthMiddleware",
    "Viewer",
    "get_viewer",
    "get_optional_viewer",
    "SupabaseJwksVerifier",
    "TokenVerifier",
]
