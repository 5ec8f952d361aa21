"""Authentication service: caller identity checks against the identity provider"""
import logging
from typing import Any, Dict, Optional

import httpx

from app.config import get_settings
from app.utils.errors import AuthError

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Token from an ``Authorization: Bearer <token>`` header value"""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError("Missing or invalid Authorization header")
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise AuthError("Missing or invalid Authorization header")
    return token


class IdentityClient:
    """Resolves bearer tokens to users via ``{identity_url}/auth/v1/user``"""

    def __init__(
        self,
        identity_url: Optional[str] = None,
        anon_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        settings = get_settings()
        self.identity_url = (identity_url or settings.identity_url).rstrip("/")
        self.anon_key = anon_key if anon_key is not None else settings.identity_anon_key
        self.timeout = timeout or settings.identity_timeout_seconds
        self.transport = transport

    async def get_user(self, token: str) -> Dict[str, Any]:
        """
        Return the user behind a token.

        Raises:
            AuthError: the token is unknown, expired, or the provider is unreachable
        """
        headers = {"Authorization": f"Bearer {token}"}
        if self.anon_key:
            headers["apikey"] = self.anon_key

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(f"{self.identity_url}/auth/v1/user", headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Identity provider unreachable: {e}")
            raise AuthError("Authentication failed")

        if response.status_code != 200:
            try:
                detail = response.json().get("msg") or response.json().get("message")
            except (ValueError, AttributeError):
                detail = None
            raise AuthError(detail or "Invalid token")

        try:
            user = response.json()
        except ValueError:
            raise AuthError("Authentication failed")
        if not isinstance(user, dict) or not user.get("id"):
            raise AuthError("Invalid token")
        return user

    async def authenticate(self, authorization: Optional[str]) -> Dict[str, Any]:
        """Validate an Authorization header value end to end"""
        return await self.get_user(extract_bearer_token(authorization))
