"""
auth/tokens.py -- Signed token codec for access and renewal tokens.

Security design decisions:
  JWT: python-jose with HS256. Every token carries iat/exp and a "typ" claim
       ("access" or "renewal") so one kind can never be replayed as the other.
       The signature covers the full claim set -- no field, expiry included,
       can change without invalidating the token.

  Failures: verify() raises auth.errors.Expired when the signature is good
       but exp has passed, and auth.errors.InvalidToken for everything else
       (bad signature, malformed, wrong algorithm, missing claims). The
       distinction matters: only an expired renewal token triggers the
       store-side invalidation in AuthService.renew().

  Renewal tokens carry a random jti so two tokens minted for the same
       principal in the same second still differ. Rotation depends on that.

  SECRET_KEY: sourced from core.config.get_settings(). Read-only after
       startup; the codec holds no other state.
"""

from __future__ import annotations

import secrets
import time
from functools import lru_cache
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import Expired, InvalidToken
from auth.models import AccessClaims, RenewalClaims
from core.config import get_settings

ACCESS = "access"
RENEWAL = "renewal"


class TokenCodec:
    """Sign and verify compact HS256 tokens.

    Usage:
        codec = TokenCodec(secret_key)
        token = codec.sign({"sub": "abc"}, ttl=60)
        claims = codec.verify(token)   # {"sub": "abc", "iat": ..., "exp": ...}
    """

    algorithm = "HS256"

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key

    # ------------------------------------------------------------------
    # Generic sign / verify
    # ------------------------------------------------------------------

    def sign(self, claims: dict[str, Any], ttl: int, now: int | None = None) -> str:
        """Encode claims with iat=now and exp=now+ttl. ttl is in seconds."""
        issued_at = int(time.time()) if now is None else now
        payload = {**claims, "iat": issued_at, "exp": issued_at + ttl}
        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    def verify(self, token: str, verify_exp: bool = True) -> dict[str, Any]:
        """Decode a token and check its signature (and expiry unless disabled).

        Raises Expired or InvalidToken. Never returns a partially checked payload.
        """
        try:
            return jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": verify_exp},
            )
        except ExpiredSignatureError as exc:
            raise Expired() from exc
        except (JWTError, AttributeError, TypeError) as exc:
            raise InvalidToken() from exc

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------

    def encode_access(self, principal_id: str, role: str, renewal_token: str, ttl: int) -> str:
        return self.sign({"sub": principal_id, "role": role, "rt": renewal_token, "typ": ACCESS}, ttl)

    def decode_access(self, token: str, verify_exp: bool = True) -> AccessClaims:
        """Verify an access token and return its claims.

        verify_exp=False is used only by the bearer-renewal strategy, which
        needs the embedded renewal token from an access token that may have
        outlived its own TTL. The signature is still checked.
        """
        payload = self.verify(token, verify_exp=verify_exp)
        if payload.get("typ") != ACCESS:
            raise InvalidToken()
        sub, role, rt = payload.get("sub"), payload.get("role"), payload.get("rt")
        if not isinstance(sub, str) or not isinstance(role, str) or not isinstance(rt, str):
            raise InvalidToken()
        return AccessClaims(
            principal_id=sub,
            role=role,
            renewal_token=rt,
            issued_at=payload["iat"],
            expires_at=payload["exp"],
        )

    # ------------------------------------------------------------------
    # Renewal tokens
    # ------------------------------------------------------------------

    def encode_renewal(self, principal_id: str, ttl: int) -> str:
        return self.sign({"sub": principal_id, "jti": secrets.token_hex(16), "typ": RENEWAL}, ttl)

    def decode_renewal(self, token: str) -> RenewalClaims:
        payload = self.verify(token)
        if payload.get("typ") != RENEWAL:
            raise InvalidToken()
        sub, jti = payload.get("sub"), payload.get("jti")
        if not isinstance(sub, str) or not isinstance(jti, str):
            raise InvalidToken()
        return RenewalClaims(
            principal_id=sub,
            token_id=jti,
            issued_at=payload["iat"],
            expires_at=payload["exp"],
        )


@lru_cache
def get_token_codec() -> TokenCodec:
    """Return the process-wide codec bound to Settings.secret_key."""
    return TokenCodec(get_settings().secret_key)
