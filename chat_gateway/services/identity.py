"""Bearer-token verification against the identity collaborator."""

import logging
from typing import Dict, Optional, Protocol

import httpx

from chat_gateway.core.errors import AuthError
from chat_gateway.schemas.chat import User

logger = logging.getLogger(__name__)


def bearer_token(authorization: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        raise AuthError("Missing Authorization header")
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise AuthError("Malformed Authorization header")
    return token


class IdentityProvider(Protocol):
    async def verify(self, token: str) -> User: ...


class StaticTokenIdentity:
    """Fixed token table for development and tests."""

    def __init__(self, tokens: Dict[str, User]) -> None:
        self._tokens = dict(tokens)

    @classmethod
    def from_string(cls, value: str) -> "StaticTokenIdentity":
        # "token:user_id[:email],token2:user_id2"
        tokens: Dict[str, User] = {}
        for item in filter(None, (s.strip() for s in value.split(","))):
            token, _, rest = item.partition(":")
            user_id, _, email = rest.partition(":")
            if token and user_id:
                tokens[token] = User(id=user_id, email=email or None)
        return cls(tokens)

    async def verify(self, token: str) -> User:
        user = self._tokens.get(token)
        if user is None:
            raise AuthError("Authentication failed: invalid token")
        return user


class SupabaseIdentity:
    """Resolves a user access token through Supabase Auth (``GET /auth/v1/user``)."""

    def __init__(self, url: str, service_key: str, *, timeout: float = 10.0) -> None:
        self.url = url.rstrip("/") + "/auth/v1/user"
        self.service_key = service_key
        self.timeout = timeout

    async def verify(self, token: str) -> User:
        headers = {"apikey": self.service_key, "Authorization": f"Bearer {token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.get(self.url, headers=headers)
        except httpx.HTTPError as e:
            logger.error("identity provider unreachable: %s", e)
            raise AuthError("Authentication error") from e
        if r.status_code in (401, 403):
            raise AuthError("Authentication failed: invalid or expired token")
        if not r.is_success:
            logger.error("identity provider returned %s", r.status_code)
            raise AuthError("Authentication error")
        data = r.json()
        if not isinstance(data, dict) or not data.get("id"):
            raise AuthError("No user found for this token")
        return User(id=data["id"], email=data.get("email"))
