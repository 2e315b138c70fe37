"""
middleware/auth_middleware.py — JWT authentication decorators.

Tokens are issued elsewhere; this service only consumes them.

The @require_auth decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Decodes and verifies the JWT signature (HS256 by default)
  3. Checks token expiry
  4. Attaches user_id (int) and is_admin (bool) to flask.g
  5. Raises the appropriate 401 error if any step fails

The @require_admin decorator runs the same sequence and then requires the
is_admin claim, raising FORBIDDEN (403) otherwise.

Strict responsibility boundary:
  - This middleware authenticates. Ownership checks ("may this caller
    delete this post?") happen in the route, before the engine is called.
    The engine itself enforces no permissions.
  - Services receive user ids as plain integers, with no knowledge of JWT
    or HTTP headers.

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, invalid signature, or bad payload
  TOKEN_EXPIRED  (401) — valid token but exp claim is in the past
  FORBIDDEN      (403) — authenticated, but not an admin (require_admin only)
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from backend.app.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces JWT authentication.

    Attaches the authenticated user id to flask.g.user_id and the admin
    flag to flask.g.is_admin.
    Raises AppError for all auth failures — the global error handler converts
    these to the correct JSON response. Routes never catch AppError.

    Usage:
        @ratings_bp.route("/posts/<int:post_id>/rating", methods=["PUT"])
        @require_auth
        def rate_post(post_id):
            user_id = g.user_id  # always an int when this runs
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> None:
    """
    Performs the full JWT authentication sequence and sets flask.g.user_id
    and flask.g.is_admin.

    Separated from the decorator wrapper for testability — can be called
    directly in tests without wrapping a real view function.

    Raises AppError on any authentication failure (never returns a response
    directly — error propagates to the global Flask error handler).
    """
    auth_header = request.headers.get("Authorization", "")

    # ── Step 1: Require Authorization header ──────────────────────────────
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    # ── Step 2: Parse "Bearer <token>" format ─────────────────────────────
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    raw_token = parts[1]

    # ── Step 3: Decode and verify the JWT ─────────────────────────────────
    try:
        payload = jwt.decode(
            raw_token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Obtain a new one and retry.",
            401,
        )
    except jwt.InvalidTokenError:
        # Covers: bad signature, malformed token, invalid claims, etc.
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )

    # ── Step 4: Extract and validate the sub (user_id) claim ──────────────
    sub = payload.get("sub")
    if sub is None:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is missing the required 'sub' claim.",
            401,
        )

    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The 'sub' claim in the access token is not a valid user ID.",
            401,
        )

    # ── Step 5: Attach identity to flask.g ────────────────────────────────
    # Routes pass these to services as plain values. Services never import
    # flask.g directly.
    g.user_id = user_id
    g.is_admin = payload.get("is_admin") is True


def require_admin(f: Callable) -> Callable:
    """
    Route decorator for operator endpoints: authenticated AND is_admin.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        if not g.is_admin:
            raise AppError(
                ErrorCode.FORBIDDEN,
                "This operation is restricted to administrators.",
                403,
            )
        return f(*args, **kwargs)

    return decorated
