"""
api/limiter.py -- Shared slowapi rate limiter for the credential endpoints.

Keyed by client IP. Two routes carry limits, both read from Settings:
  POST /api/v1/auth/sign-in   Settings.login_rate_limit   (default 10/minute)
  POST /api/v1/auth/sign-up   Settings.signup_rate_limit  (default 5/minute)

Refresh, sign-out and bearer routes are not limited here; they already
require a signed token. api/main.py mounts SlowAPIMiddleware and stores this
instance on app.state.limiter. Counters are in-memory and per process.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
