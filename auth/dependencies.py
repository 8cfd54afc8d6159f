"""
auth/dependencies.py -- FastAPI Depends() helpers: the three entry strategies.

Every protected route picks exactly one Strategy when it is registered:

  Strategy.LOCAL           username/password in the JSON body -> credential
                           validator. Used only by sign-in.
  Strategy.BEARER          Authorization: Bearer <access token> -> access
                           verifier + Role Gate for the route's operation id.
  Strategy.BEARER_RENEWAL  Authorization: Bearer <access token> whose embedded
                           {principal_id, renewal_token} go to the renewal
                           verifier. Used by refresh and sign-out.

guard(strategy, operation) returns the dependency callable. Each strategy
either returns the Principal (public view) and stashes it on
request.state.principal, or raises an auth.errors exception that
api/main.py turns into 401/403. Nothing is cached between requests.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Body/Request) because
  this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Annotated

from fastapi import Body, Request

from auth.errors import Unauthenticated
from auth.models import Principal
from auth.roles import operation_roles
from auth.service import AuthService


class Strategy(str, Enum):
    LOCAL = "local"
    BEARER = "bearer"
    BEARER_RENEWAL = "bearer_renewal"


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def extract_bearer_token(request: Request) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" header, or None."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _require_bearer(request: Request) -> str:
    token = extract_bearer_token(request)
    if token is None:
        raise Unauthenticated()
    return token


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def local_principal(
    request: Request,
    username: Annotated[str, Body(min_length=1, max_length=255)],
    password: Annotated[str, Body(min_length=1, max_length=255)],
) -> Principal:
    """Local strategy: validate body credentials. Uniform 401 on any mismatch [C1].

    The stored record (with secrets) is attached to request.state.principal
    for the session issuer to consume; it never leaves the server.
    """
    principal = get_auth_service(request).validate_credentials(username, password)
    if principal is None:
        raise Unauthenticated("Invalid username or password.")
    request.state.principal = principal
    return principal


def _bearer(operation: str | None) -> Callable[[Request], Principal]:
    def bearer_principal(request: Request) -> Principal:
        """Bearer strategy: verify the access token and apply the Role Gate.

        The required-role set is looked up at dispatch time, so the table may
        be filled in after this dependency was created.
        """
        token = _require_bearer(request)
        required = operation_roles.required_for(operation) if operation else None
        principal = get_auth_service(request).authorize(token, required)
        request.state.principal = principal
        return principal

    return bearer_principal


def renewal_principal(request: Request) -> Principal:
    """Bearer-renewal strategy: check the embedded renewal token against the store.

    The renewal token is left on request.state.renewal_token so the refresh
    route can reissue an access token around it without a second lookup.
    """
    token = _require_bearer(request)
    service = get_auth_service(request)
    claims = service.read_renewal_bearer(token)
    principal = service.renew(claims.principal_id, claims.renewal_token)
    request.state.principal = principal
    request.state.renewal_token = claims.renewal_token
    return principal


def guard(strategy: Strategy, operation: str | None = None) -> Callable[..., Principal]:
    """Return the dependency implementing strategy.

    Use as a FastAPI dependency:
        @router.get("/auth/me")
        def me(principal: Principal = Depends(guard(Strategy.BEARER, "auth.me"))): ...

    operation is only meaningful for Strategy.BEARER, where it selects the
    required-role set from auth.roles.operation_roles.
    """
    if strategy is Strategy.LOCAL:
        return local_principal
    if strategy is Strategy.BEARER:
        return _bearer(operation)
    if strategy is Strategy.BEARER_RENEWAL:
        return renewal_principal
    raise ValueError(f"Unknown strategy: {strategy!r}")
