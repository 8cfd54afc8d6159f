"""
auth/errors.py -- Failure taxonomy for the authentication core.

Every failure the core can produce is one of these classes. Each carries the
HTTP status and machine-readable code that api/main.py renders into the
standard error envelope, so route handlers never translate auth failures by
hand.

Enumeration safety: messages are fixed per class. Callers must not pass a
message that says which check failed ("no such user" vs "wrong password").
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all auth-core failures."""

    status_code: int = 500
    code: str = "auth_error"
    message: str = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class Unauthenticated(AuthError):
    """No valid identity could be established for the request."""

    status_code = 401
    code = "unauthenticated"
    message = "Authentication required."


class InvalidToken(Unauthenticated):
    """A presented token failed signature or structure checks."""

    code = "invalid_token"
    message = "Invalid token."


class Expired(Unauthenticated):
    """A presented token was well-formed and correctly signed but expired."""

    code = "token_expired"
    message = "Token has expired."


class Forbidden(AuthError):
    """Identity established, but the principal's role is not permitted."""

    status_code = 403
    code = "forbidden"
    message = "Insufficient role for this operation."


class Conflict(AuthError):
    """Sign-up against a username that is already taken."""

    status_code = 409
    code = "conflict"
    message = "A principal with that username already exists."


class StoreUnavailable(AuthError):
    """The credential store could not be reached or failed mid-operation."""

    status_code = 503
    code = "store_unavailable"
    message = "Credential store unavailable."
