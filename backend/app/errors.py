"""
errors.py — AppError base class and error code registry.

Every error returned by the API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - INTEGRITY_VIOLATION is fatal: the reference index disagrees with the
    store. It is never retried and its detail never reaches the client.
  - STORE_UNAVAILABLE is transient: the caller may retry the whole operation.
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Invalid input (400) ────────────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_SCORE              = "INVALID_SCORE"
    UNKNOWN_KIND               = "UNKNOWN_KIND"
    UNKNOWN_ACTION             = "UNKNOWN_ACTION"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    # A delete that finds nothing is an idempotent no-op for the caller.
    ENTITY_NOT_FOUND           = "ENTITY_NOT_FOUND"
    RATING_NOT_FOUND           = "RATING_NOT_FOUND"

    # ── Business Rule Violations (422) ────────────────────────────────────
    RATING_DISABLED            = "RATING_DISABLED"
    SELF_RATING                = "SELF_RATING"
    ACTION_MISMATCH            = "ACTION_MISMATCH"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── Store Errors ───────────────────────────────────────────────────────
    STORE_UNAVAILABLE          = "STORE_UNAVAILABLE"      # 503 — retryable
    INTEGRITY_VIOLATION        = "INTEGRITY_VIOLATION"    # 500 — fatal

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"
