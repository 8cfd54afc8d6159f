"""
api/routes/v1/auth.py -- Session and principal administration REST endpoints.

Routes:
  POST  /api/v1/auth/sign-in                     -- Local strategy; issues a session
  POST  /api/v1/auth/sign-up                     -- create principal + session
  POST  /api/v1/auth/refresh                     -- BearerRenewal; new access token
  POST  /api/v1/auth/sign-out                    -- BearerRenewal; clears renewal slot
  GET   /api/v1/auth/me                          -- Bearer, roles {"user"}
  PATCH /api/v1/auth/users/{principal_id}/role   -- Bearer, roles {"admin"}

Security:
  [H2] sign-in and sign-up are rate-limited per IP (Settings.login_rate_limit,
       Settings.signup_rate_limit).
  [C1] sign-in goes through the Local strategy, which runs bcrypt even for
       unknown usernames. Do not inline a username lookup here.
  [M4] PATCH .../role refuses to change the caller's own role, so an admin
       cannot demote the account they are using.
  [M5] Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.limiter import limiter
from api.models import PrincipalResponse, RoleUpdate, SessionResponse, SignOutResponse, SignUpRequest
from auth.dependencies import Strategy, get_auth_service, guard
from auth.models import Principal
from auth.roles import ADMIN_ROLE, operation_roles
from auth.store import UserStore
from core.config import get_settings

_settings = get_settings()

# Role policy (operation id -> required roles). Consulted by the Bearer
# strategy on every request.
ME = operation_roles.register("auth.me")
SET_ROLE = operation_roles.register("auth.users.set_role", {ADMIN_ROLE})

router = APIRouter()


# ---------------------------------------------------------------------------
# Session endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/sign-in", response_model=SessionResponse)
def sign_in(
    request: Request,
    response: Response,
    principal: Principal = Depends(guard(Strategy.LOCAL)),
) -> SessionResponse:
    """Authenticate with username and password; rotate the renewal token.

    Wrong username and wrong password produce the same 401 body.
    """
    session = get_auth_service(request).sign_in(principal)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return SessionResponse.from_session(session)


@limiter.limit(_settings.signup_rate_limit)  # [H2]
@router.post("/auth/sign-up", response_model=SessionResponse)
def sign_up(request: Request, response: Response, body: SignUpRequest) -> SessionResponse:
    """Create a principal with the default role and sign it in. 409 if the username is taken."""
    session = get_auth_service(request).sign_up(body.username, body.password, body.nickname)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return SessionResponse.from_session(session)


@router.post("/auth/refresh", response_model=SessionResponse)
def refresh(
    request: Request,
    response: Response,
    principal: Principal = Depends(guard(Strategy.BEARER_RENEWAL)),
) -> SessionResponse:
    """Exchange the bearer token's embedded renewal token for a new access token.

    The renewal token itself is not rotated; only sign-in rotates it.
    """
    session = get_auth_service(request).resume_session(principal, request.state.renewal_token)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return SessionResponse.from_session(session)


@router.post("/auth/sign-out", response_model=SignOutResponse)
def sign_out(
    request: Request,
    principal: Principal = Depends(guard(Strategy.BEARER_RENEWAL)),
) -> SignOutResponse:
    """Clear the principal's renewal token. Issued access tokens expire on their own."""
    get_auth_service(request).sign_out(principal.id)
    return SignOutResponse()


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=PrincipalResponse)
def me(principal: Principal = Depends(guard(Strategy.BEARER, ME))) -> PrincipalResponse:
    """Return the current principal, with its role as stored right now."""
    return PrincipalResponse.from_principal(principal)


@router.patch("/auth/users/{principal_id}/role", response_model=PrincipalResponse)
def set_role(
    request: Request,
    principal_id: str,
    body: RoleUpdate,
    current: Principal = Depends(guard(Strategy.BEARER, SET_ROLE)),
) -> PrincipalResponse:
    """Change a principal's role. Admin only.

    Takes effect on the target's next request: the Bearer strategy reloads
    the role from the store instead of trusting the token.
    """
    if principal_id == current.id:  # [M4]
        raise HTTPException(
            status_code=400,
            detail={"code": "self_role_change", "message": "You cannot change your own role."},
        )
    user_store: UserStore = request.app.state.user_store
    updated = user_store.update(principal_id, role=body.role)
    if updated is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Principal not found."},
        )
    return PrincipalResponse.from_principal(updated)
