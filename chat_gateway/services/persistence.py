"""
Durable chat and user records.

One chat row per session: ``{id, user_id, messages, message_count, created_at,
updated_at}`` where ``message_count`` counts completed turns. The in-memory
repositories back development and tests; the Supabase ones talk to PostgREST
over httpx with the service-role key.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError, ValidationInfo, field_validator

from chat_gateway.core.errors import PersistenceError
from chat_gateway.schemas.messages import Message

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ChatRecord(BaseModel):
    id: str
    user_id: str
    messages: List[Message] = Field(default_factory=list)
    message_count: int = 0
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("messages", "message_count", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return [] if info.field_name == "messages" else 0
        return value


class UserRecord(BaseModel):
    id: str
    email: Optional[str] = None
    is_subscribed: Optional[bool] = False
    stripe_subscription_id: Optional[str] = None


class ChatRepository(Protocol):
    async def get_chat(self, session_id: str, user_id: str) -> Optional[ChatRecord]: ...

    async def find_chat(self, session_id: str) -> Optional[ChatRecord]: ...

    async def count_chats(self, user_id: str) -> int: ...

    async def save_turn(
        self, session_id: str, user_id: str, user_message: Message, assistant_message: Message
    ) -> ChatRecord: ...

    async def delete_chat(self, session_id: str, user_id: str) -> bool: ...


class UserRepository(Protocol):
    async def get_user(self, user_id: str) -> Optional[UserRecord]: ...

    async def set_subscribed(self, user_id: str, subscribed: bool) -> None: ...


def _text_only(message: Message) -> Message:
    # image bytes are never persisted; the stored turn is its text
    return Message(role=message.role, content=message.text)


class InMemoryChatRepository:
    def __init__(self) -> None:
        self._chats: Dict[str, ChatRecord] = {}

    async def get_chat(self, session_id: str, user_id: str) -> Optional[ChatRecord]:
        record = self._chats.get(session_id)
        if record is None or record.user_id != user_id:
            return None
        return record.model_copy(deep=True)

    async def find_chat(self, session_id: str) -> Optional[ChatRecord]:
        record = self._chats.get(session_id)
        return record.model_copy(deep=True) if record else None

    async def count_chats(self, user_id: str) -> int:
        return sum(1 for r in self._chats.values() if r.user_id == user_id)

    async def save_turn(
        self, session_id: str, user_id: str, user_message: Message, assistant_message: Message
    ) -> ChatRecord:
        turn = [_text_only(user_message), _text_only(assistant_message)]
        record = self._chats.get(session_id)
        if record is None:
            record = ChatRecord(id=session_id, user_id=user_id, messages=turn, message_count=1)
            self._chats[session_id] = record
        else:
            record.messages.extend(turn)
            record.message_count += 1
            record.updated_at = _now()
        return record.model_copy(deep=True)

    async def delete_chat(self, session_id: str, user_id: str) -> bool:
        record = self._chats.get(session_id)
        if record is None or record.user_id != user_id:
            return False
        del self._chats[session_id]
        return True

    def put(self, record: ChatRecord) -> None:
        self._chats[record.id] = record


class InMemoryUserRepository:
    def __init__(self) -> None:
        self._users: Dict[str, UserRecord] = {}

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        record = self._users.get(user_id)
        return record.model_copy() if record else None

    async def set_subscribed(self, user_id: str, subscribed: bool) -> None:
        record = self._users.setdefault(user_id, UserRecord(id=user_id))
        record.is_subscribed = subscribed

    def put(self, record: UserRecord) -> None:
        self._users[record.id] = record


class _PostgrestClient:
    def __init__(self, url: str, service_key: str, *, timeout: float = 15.0) -> None:
        self.base = url.rstrip("/") + "/rest/v1"
        self.service_key = service_key
        self.timeout = timeout

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }
        headers.update(extra or {})
        return headers

    async def request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.request(
                    method, f"{self.base}/{table}", params=params, json=json, headers=self._headers(headers)
                )
        except httpx.HTTPError as e:
            raise PersistenceError(f"{table} {method} failed: {e}") from e
        if not r.is_success:
            raise PersistenceError(f"{table} {method} failed: {r.status_code} {r.text[:200]}")
        return r

    async def rows(self, method: str, table: str, **kwargs: Any) -> List[Dict[str, Any]]:
        r = await self.request(method, table, **kwargs)
        try:
            data = r.json()
        except ValueError as e:
            raise PersistenceError(f"{table} {method} returned malformed JSON") from e
        if not isinstance(data, list):
            raise PersistenceError(f"{table} {method} returned {type(data).__name__}, expected rows")
        return data


class SupabaseChatRepository:
    def __init__(self, url: str, service_key: str) -> None:
        self._db = _PostgrestClient(url, service_key)

    async def _select(self, params: Dict[str, str]) -> Optional[ChatRecord]:
        rows = await self._db.rows("GET", "chats", params={**params, "select": "*", "limit": "1"})
        return ChatRecord.model_validate(rows[0]) if rows else None

    async def get_chat(self, session_id: str, user_id: str) -> Optional[ChatRecord]:
        return await self._select({"id": f"eq.{session_id}", "user_id": f"eq.{user_id}"})

    async def find_chat(self, session_id: str) -> Optional[ChatRecord]:
        return await self._select({"id": f"eq.{session_id}"})

    async def count_chats(self, user_id: str) -> int:
        r = await self._db.request(
            "GET",
            "chats",
            params={"user_id": f"eq.{user_id}", "select": "id", "limit": "1"},
            headers={"Prefer": "count=exact"},
        )
        match = re.search(r"/(\d+)$", r.headers.get("content-range", ""))
        if match:
            return int(match.group(1))
        try:
            return len(r.json())
        except ValueError as e:
            raise PersistenceError("chats count returned malformed JSON") from e

    async def save_turn(
        self, session_id: str, user_id: str, user_message: Message, assistant_message: Message
    ) -> ChatRecord:
        turn = [_text_only(user_message).model_dump(mode="json"), _text_only(assistant_message).model_dump(mode="json")]
        existing = await self.get_chat(session_id, user_id)
        prefer = {"Prefer": "return=representation"}
        if existing is None:
            rows = await self._db.rows(
                "POST",
                "chats",
                json={"id": session_id, "user_id": user_id, "messages": turn, "message_count": 1},
                headers=prefer,
            )
        else:
            messages = [m.model_dump(mode="json") for m in existing.messages] + turn
            rows = await self._db.rows(
                "PATCH",
                "chats",
                params={"id": f"eq.{session_id}", "user_id": f"eq.{user_id}"},
                json={
                    "messages": messages,
                    "message_count": existing.message_count + 1,
                    "updated_at": _now().isoformat(),
                },
                headers=prefer,
            )
        if not rows:
            # the row vanished between the read and the write
            raise PersistenceError(f"chat {session_id} was not written")
        try:
            return ChatRecord.model_validate(rows[0])
        except ValidationError as e:
            raise PersistenceError(f"chat {session_id} came back malformed: {e}") from e

    async def delete_chat(self, session_id: str, user_id: str) -> bool:
        rows = await self._db.rows(
            "DELETE",
            "chats",
            params={"id": f"eq.{session_id}", "user_id": f"eq.{user_id}"},
            headers={"Prefer": "return=representation"},
        )
        return bool(rows)


class SupabaseUserRepository:
    def __init__(self, url: str, service_key: str) -> None:
        self._db = _PostgrestClient(url, service_key)

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        rows = await self._db.rows(
            "GET",
            "users",
            params={"id": f"eq.{user_id}", "select": "id,email,is_subscribed,stripe_subscription_id", "limit": "1"},
        )
        return UserRecord.model_validate(rows[0]) if rows else None

    async def set_subscribed(self, user_id: str, subscribed: bool) -> None:
        await self._db.request(
            "PATCH",
            "users",
            params={"id": f"eq.{user_id}"},
            json={"is_subscribed": subscribed, "updated_at": _now().isoformat()},
        )
