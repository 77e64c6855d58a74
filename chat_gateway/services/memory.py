# In-process conversation store: session id -> system message + turns, selected model,
# and the files uploaded into that session.
# Process-local only; a multi-instance deployment needs a shared implementation
# of the same get/set/delete surface.

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional
import asyncio

from chat_gateway.schemas.messages import Message, Role, UploadedFile


@dataclass
class Session:
    session_id: str
    owner_id: str
    selected_model: str
    messages: List[Message] = field(default_factory=list)  # messages[0] is always the system message
    files: List[UploadedFile] = field(default_factory=list)


class SessionStore:
    def __init__(self, *, system_prompt: str) -> None:
        """
        self._sessions: session_id -> Session, created lazily on first reference
        and removed only by an explicit delete.
        """
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._system_prompt = system_prompt

    async def get(self, session_id: str) -> Optional[Session]:
        async with self._lock:
            return self._sessions.get(session_id)

    async def set(self, session: Session) -> None:
        if not session.messages or session.messages[0].role != "system":
            raise ValueError("a session must start with its system message")
        async with self._lock:
            self._sessions[session.session_id] = session

    async def delete(self, session_id: str) -> bool:
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None

    # lazy init: the first reference creates the session with its system message,
    # optionally seeded with turns reloaded from the durable store
    async def ensure(
        self,
        session_id: str,
        *,
        owner_id: str,
        model: str,
        seed: Iterable[Message] = (),
    ) -> Session:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                messages = [Message(role="system", content=self._system_prompt)]
                messages.extend(m for m in seed if m.role != "system")
                session = Session(session_id=session_id, owner_id=owner_id, selected_model=model, messages=messages)
                self._sessions[session_id] = session
            return session

    async def select_model(self, session_id: str, model: str) -> None:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.selected_model = model

    async def append(self, session_id: str, role: Role, content: str) -> None:
        if role == "system":
            raise ValueError("the system message is only ever stored at index 0")
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise KeyError(session_id)
            session.messages.append(Message(role=role, content=content))

    async def add_files(self, session_id: str, files: List[UploadedFile]) -> None:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.files.extend(files)

    async def history(self, session_id: str) -> List[Message]:
        # copy, so callers can assemble a request without touching stored state
        async with self._lock:
            session = self._sessions.get(session_id)
            return list(session.messages) if session else []
