"""Access-token verification against Supabase Auth."""

import logging
from dataclasses import dataclass

import httpx

from aios.core.config import settings
from aios.core.errors import AuthError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str | None = None


class SupabaseAuth:
    """Resolves a bearer token to the auth provider's user."""

    def __init__(self, url: str | None = None, service_key: str | None = None, timeout: float = 10.0):
        self._url = (url if url is not None else settings.supabase_url).rstrip("/")
        self._service_key = service_key if service_key is not None else settings.supabase_service_key
        self._timeout = timeout

    async def get_user(self, token: str) -> AuthUser:
        if not token:
            raise AuthError("no_token", "Missing bearer token")
        if not self._url:
            raise AuthError("invalid_token", "Authentication backend not configured")

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(
                    f"{self._url}/auth/v1/user",
                    headers={
                        "apikey": self._service_key,
                        "Authorization": f"Bearer {token}",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Auth request failed: {e}")
            raise AuthError("invalid_token", "Authentication failed") from e

        if resp.status_code != 200:
            logger.debug(f"Token rejected by auth provider ({resp.status_code})")
            raise AuthError("invalid_token", "Invalid token")

        data = resp.json()
        if not data.get("id"):
            raise AuthError("invalid_token", "Invalid token")
        return AuthUser(id=data["id"], email=data.get("email"))
