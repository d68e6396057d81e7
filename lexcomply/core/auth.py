"""
Auth0 JWT validation OR dev-mode principal. Controlled by FF_USE_AUTH0 flag.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx
from jose import jwt, JWTError

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)

VALID_ROLES = {"user", "admin", "legal_manager"}


@dataclass
class AuthenticatedUser:
    user_id: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    role: str = "user"


def dev_user() -> AuthenticatedUser:
    """Principal used when FF_USE_AUTH0=false."""
    settings = get_settings()
    return AuthenticatedUser(
        user_id=settings.dev_user_id,
        email=settings.dev_user_email,
        first_name="Demo",
        last_name="User",
        role="user",
    )


class Auth0Client:
    """Validates Auth0 JWT tokens. Caches JWKS keys."""

    def __init__(self):
        self._jwks: Optional[dict] = None
        self._jwks_fetched_at: float = 0
        self._jwks_ttl: int = 600  # 10 minutes

    async def _get_jwks(self, domain: str) -> dict:
        now = time.time()
        if self._jwks and (now - self._jwks_fetched_at) < self._jwks_ttl:
            return self._jwks

        url = f"https://{domain}/.well-known/jwks.json"
        async with httpx.AsyncClient() as client:
            resp = await client.get(url, timeout=10)
            resp.raise_for_status()
            self._jwks = resp.json()
            self._jwks_fetched_at = now
            return self._jwks

    async def verify_token(self, token: str) -> AuthenticatedUser:
        settings = get_settings()
        domain = settings.auth0_domain
        audience = settings.auth0_audience
        algorithm = settings.auth0_algorithm

        jwks = await self._get_jwks(domain)
        unverified_header = jwt.get_unverified_header(token)

        rsa_key = {}
        for key in jwks.get("keys", []):
            if key["kid"] == unverified_header.get("kid"):
                rsa_key = {
                    "kty": key["kty"],
                    "kid": key["kid"],
                    "use": key["use"],
                    "n": key["n"],
                    "e": key["e"],
                }
                break

        if not rsa_key:
            raise JWTError("Unable to find matching key in JWKS")

        payload = jwt.decode(
            token,
            rsa_key,
            algorithms=[algorithm],
            audience=audience,
            issuer=f"https://{domain}/",
        )

        return principal_from_claims(payload)


def principal_from_claims(payload: dict) -> AuthenticatedUser:
    """Map verified token claims onto a principal. Unknown roles become 'user'."""
    role = payload.get("https://lexcomply.app/role", "user")
    if role not in VALID_ROLES:
        role = "user"
    return AuthenticatedUser(
        user_id=payload.get("sub", ""),
        email=payload.get("email", payload.get("https://lexcomply.app/email", "")),
        first_name=payload.get("given_name", ""),
        last_name=payload.get("family_name", ""),
        role=role,
    )


# Singleton
_auth0_client = Auth0Client()


async def get_current_user(authorization: str = "") -> AuthenticatedUser:
    """
    Resolve the current principal from the Authorization header.
    If FF_USE_AUTH0 is false, returns the dev principal.
    """
    flags = get_flags()

    if not flags.use_auth0:
        return dev_user()

    if not authorization:
        raise PermissionError("Missing Authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise PermissionError("Invalid Authorization header. Use: Bearer <token>")

    try:
        user = await _auth0_client.verify_token(token)
    except (JWTError, httpx.HTTPError) as e:
        raise PermissionError(f"Invalid token: {e}")

    if not user.user_id:
        raise PermissionError("Token missing sub claim")

    return user
