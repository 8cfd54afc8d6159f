"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). The store maps rows to
Principal; the service builds claims and sessions; routes map both to the API
contract in api/models.py.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Principal:
    """An identity that can authenticate against Gatehouse.

    hashed_password and renewal_token are secrets. They are populated on
    records read from the store and set to None on every Principal handed
    back to a caller outside auth/ (see AuthService._public_view).

    renewal_token is the single active renewal slot. Writing a new value
    revokes the previous token; None means the principal has no live session.
    """

    username: str
    role: str  # "user", "admin", or any operator-defined role
    id: str | None = None  # uuid4 hex, assigned by the store on insert
    hashed_password: str | None = None
    nickname: str = ""
    renewal_token: str | None = None
    created_at: str | None = None  # ISO 8601
    updated_at: str | None = None  # ISO 8601


@dataclass(frozen=True)
class AccessClaims:
    """Decoded contents of an access token. Never persisted.

    renewal_token is the renewal token that was current when this access
    token was minted. The bearer-renewal strategy reads it back out.
    """

    principal_id: str
    role: str
    renewal_token: str
    issued_at: int  # unix seconds
    expires_at: int  # unix seconds


@dataclass(frozen=True)
class RenewalClaims:
    """Decoded contents of a renewal token. Never persisted as claims --
    only the encoded token string lives in Principal.renewal_token."""

    principal_id: str
    token_id: str
    issued_at: int
    expires_at: int


@dataclass(frozen=True)
class Session:
    """Result of a successful sign-in, sign-up, or refresh.

    principal is the public view (no password hash, no renewal token).
    renewal_token is exposed for in-process callers; HTTP clients only ever
    receive access_token, which embeds it.
    """

    access_token: str
    renewal_token: str
    expires_in: int
    principal: Principal
