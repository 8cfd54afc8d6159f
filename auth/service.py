"""
auth/service.py -- Authentication domain service.

AuthService owns every state transition of a principal's session:

  sign_up / sign_in      mint a renewal token, store it in the principal's
                         single renewal slot (rotation point), then mint an
                         access token that embeds it.
  refresh                verify a presented renewal token against the slot and
                         mint a new access token around the SAME renewal token.
  sign_out               clear the slot.
  authorize              verify an access token, reload the principal, and
                         apply the Role Gate.

Invariants:
  - At most one renewal token per principal is valid: the one in the slot.
  - The only write on a failure path is the expired-renewal clear in renew().
    A forged or malformed renewal token never touches the store.
  - The role inside an access token is informational. authorize() always
    uses the role currently stored for the principal.
  - Principals returned to callers never carry hashed_password or
    renewal_token.

Accepted races (no in-process locks):
  - Two concurrent sign-ins for one principal: last write to the slot wins;
    the other caller's renewal token fails later with Unauthenticated.
  - Two concurrent sign-ups for one username: the existence check is not
    atomic with the insert; UNIQUE(username) in the store turns the loser
    into Conflict.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from collections.abc import Iterable

from auth.errors import Conflict, Expired, Forbidden, InvalidToken, Unauthenticated
from auth.models import AccessClaims, Principal, Session
from auth.passwords import DUMMY_HASH, hash_password, verify_password
from auth.roles import ADMIN_ROLE, role_permits
from auth.store import CredentialStore
from auth.tokens import RENEWAL, TokenCodec
from core.config import Settings

logger = logging.getLogger("gatehouse.auth")


class AuthService:
    """Credential validation, session issuance, renewal, and authorization."""

    def __init__(self, store: CredentialStore, codec: TokenCodec, settings: Settings) -> None:
        self._store = store
        self._codec = codec
        self._access_ttl = settings.access_token_expire_seconds
        self._renewal_ttl = settings.renewal_token_expire_seconds
        self._default_role = settings.default_role
        self._bcrypt_rounds = settings.bcrypt_rounds

    # ------------------------------------------------------------------
    # Credential validation [C1]
    # ------------------------------------------------------------------

    def validate_credentials(self, username: str, password: str) -> Principal | None:
        """Return the stored principal if username/password match, else None.

        Always runs bcrypt, against DUMMY_HASH when the username is unknown,
        so response time does not reveal whether the account exists.
        """
        principal = self._store.find_one(username=username)
        if principal is None or not principal.hashed_password:
            verify_password(password, DUMMY_HASH)
            return None
        if not verify_password(password, principal.hashed_password):
            return None
        return principal

    # ------------------------------------------------------------------
    # Session issuance
    # ------------------------------------------------------------------

    def sign_in(self, principal: Principal) -> Session:
        """Rotate the principal's renewal token and mint a matching access token.

        principal must already be authenticated (validate_credentials or
        sign_up). Overwriting the slot revokes any earlier renewal token.
        """
        renewal_token = self._codec.encode_renewal(principal.id, self._renewal_ttl)
        stored = self._store.update(principal.id, renewal_token=renewal_token)
        if stored is None:
            # Deleted between validation and issuance.
            raise Unauthenticated()
        logger.info("Session issued for principal %s", stored.id)
        return self._session(stored, renewal_token)

    def authenticate(self, username: str, password: str) -> Session:
        """Validate credentials and sign in. Raises Unauthenticated on any mismatch."""
        principal = self.validate_credentials(username, password)
        if principal is None:
            logger.info("Sign-in rejected")
            raise Unauthenticated("Invalid username or password.")
        return self.sign_in(principal)

    def sign_up(self, username: str, password: str, nickname: str = "") -> Session:
        """Create a principal with the default role and sign it in.

        Raises Conflict, without writing anything, if the username is taken.
        """
        if self._store.find_one(username=username) is not None:
            raise Conflict()
        principal = self._store.create(
            username=username,
            hashed_password=hash_password(password, self._bcrypt_rounds),
            nickname=nickname,
            role=self._default_role,
        )
        logger.info("Principal %s signed up", principal.id)
        return self.sign_in(principal)

    def sign_out(self, principal_id: str) -> None:
        """Clear the renewal slot. Outstanding access tokens live until their exp."""
        self._store.update(principal_id, renewal_token=None)
        logger.info("Principal %s signed out", principal_id)

    # ------------------------------------------------------------------
    # Renewal
    # ------------------------------------------------------------------

    def renew(self, principal_id: str, renewal_token: str) -> Principal:
        """Check a presented renewal token against the principal's slot.

        - Bad signature or structure: InvalidToken, store untouched. An
          expired token of the wrong type counts as a structure failure.
        - Expired: the slot is cleared, then Expired. Only expiry clears;
          a forged token must not be able to log a principal out.
        - Valid but not the token in the slot (rotated or signed out):
          Unauthenticated.
        """
        try:
            claims = self._codec.decode_renewal(renewal_token)
        except Expired:
            if self._expired_token_subject(renewal_token) == principal_id:
                self._store.update(principal_id, renewal_token=None)
                logger.warning("Expired renewal token presented; cleared session for principal %s", principal_id)
            raise
        if claims.principal_id != principal_id:
            raise Unauthenticated()
        principal = self._store.find_one(id=principal_id, renewal_token=renewal_token)
        if principal is None:
            raise Unauthenticated()
        return self._public_view(principal)

    def refresh(self, principal_id: str, renewal_token: str) -> Session:
        """Renew and mint a fresh access token around the same renewal token."""
        principal = self.renew(principal_id, renewal_token)
        return self.resume_session(principal, renewal_token)

    def resume_session(self, principal: Principal, renewal_token: str) -> Session:
        """Mint a new access token for a principal that renew() already accepted.

        The renewal token is reused as-is; only a full sign-in rotates it.
        """
        logger.info("Access token renewed for principal %s", principal.id)
        return self._session(principal, renewal_token)

    def read_renewal_bearer(self, bearer_token: str) -> AccessClaims:
        """Decode the access token a client presents for renewal or sign-out.

        Expiry of the carrier is not checked: it is routinely expired by the
        time a client renews. Its signature is, so principal_id and the
        embedded renewal token are exactly what this service minted.
        """
        return self._codec.decode_access(bearer_token, verify_exp=False)

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def authorize(self, access_token: str, required_roles: Iterable[str] | None = None) -> Principal:
        """Verify an access token and apply the Role Gate with the stored role.

        Raises Unauthenticated (or its subclasses) when identity cannot be
        established and Forbidden when the role does not satisfy
        required_roles. ADMIN_ROLE bypasses required_roles.
        """
        claims = self._codec.decode_access(access_token)
        principal = self._store.find_one(id=claims.principal_id)
        if principal is None:
            raise Unauthenticated()
        required = frozenset(required_roles or ())
        if not role_permits(principal.role, required):
            logger.warning(
                "Forbidden: principal %s with role %r lacks %s",
                principal.id,
                principal.role,
                sorted(required),
            )
            raise Forbidden()
        return self._public_view(principal)

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def ensure_admin(self, username: str, password: str, nickname: str = "") -> bool:
        """Create an admin principal if username is free. Returns True if created."""
        if self._store.find_one(username=username) is not None:
            return False
        try:
            self._store.create(
                username=username,
                hashed_password=hash_password(password, self._bcrypt_rounds),
                nickname=nickname,
                role=ADMIN_ROLE,
            )
        except Conflict:
            return False
        logger.info("Bootstrap admin %r created", username)
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _session(self, principal: Principal, renewal_token: str) -> Session:
        access_token = self._codec.encode_access(principal.id, principal.role, renewal_token, self._access_ttl)
        return Session(
            access_token=access_token,
            renewal_token=renewal_token,
            expires_in=self._access_ttl,
            principal=self._public_view(principal),
        )

    def _expired_token_subject(self, renewal_token: str) -> str | None:
        payload = self._codec.verify(renewal_token, verify_exp=False)
        if payload.get("typ") != RENEWAL:
            raise InvalidToken()
        return payload.get("sub")

    @staticmethod
    def _public_view(principal: Principal) -> Principal:
        return replace(principal, hashed_password=None, renewal_token=None)
