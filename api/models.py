"""
API request and response models for Gatehouse REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Principal, Session

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ROLE_PATTERN = r"^[a-z][a-z0-9_-]{0,29}$"

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignUpRequest(BaseModel):
    """Request body for POST /api/v1/auth/sign-up.

    password max_length keeps input well under bcrypt's 72-byte truncation
    point for ASCII passwords.

    username and password are stored exactly as sent and must match the raw
    values the Local strategy reads at sign-in. Do not strip or normalize them.
    """

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=8, max_length=64)
    nickname: str = Field(min_length=1, max_length=255)


class RoleUpdate(BaseModel):
    """Request body for PATCH /api/v1/auth/users/{principal_id}/role."""

    model_config = ConfigDict(str_strip_whitespace=True)

    role: str = Field(pattern=ROLE_PATTERN)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PrincipalResponse(BaseModel):
    """Public view of a principal. Never carries the password hash or renewal token."""

    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    nickname: str
    role: str
    created_at: str
    updated_at: str

    @classmethod
    def from_principal(cls, principal: Principal) -> "PrincipalResponse":
        return cls(
            id=principal.id or "",
            username=principal.username,
            nickname=principal.nickname,
            role=principal.role,
            created_at=principal.created_at or "",
            updated_at=principal.updated_at or "",
        )


class SessionResponse(BaseModel):
    """Response for sign-in, sign-up and refresh.

    access_token embeds the renewal token; clients present it again as a
    bearer token to /auth/refresh and /auth/sign-out.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    principal: PrincipalResponse

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            access_token=session.access_token,
            expires_in=session.expires_in,
            principal=PrincipalResponse.from_principal(session.principal),
        )


class SignOutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
