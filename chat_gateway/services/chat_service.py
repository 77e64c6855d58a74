"""
Request orchestration for one chat turn.

A turn walks ``Received -> Authenticated -> AccessChecked ->
AttachmentsProcessed -> HistoryAssembled -> ProviderDispatched -> Streaming ->
Persisted -> Done``; any step may end in ``Errored``. The one-shot path is the
same walk with a single blocking provider call in place of ``Streaming``.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from chat_gateway.core.errors import (
    AccessDeniedError,
    AccessReason,
    AttachmentError,
    IntakeError,
    PersistenceError,
    SessionOwnershipError,
)
from chat_gateway.providers.base import ProviderConfigError, ProviderError
from chat_gateway.providers.router import ModelRouter, Route
from chat_gateway.schemas.chat import User
from chat_gateway.schemas.messages import Message, UploadedFile
from chat_gateway.services.access import AccessController, AccessDecision
from chat_gateway.services.attachments import ProcessedAttachments, process_attachments
from chat_gateway.services.identity import IdentityProvider, bearer_token
from chat_gateway.services.memory import SessionStore
from chat_gateway.services.persistence import ChatRepository
from chat_gateway.services.prompt import ATTACHMENT_PROMPT, build_messages, compose_user_text

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    RECEIVED = "received"
    AUTHENTICATED = "authenticated"
    ACCESS_CHECKED = "access_checked"
    ATTACHMENTS_PROCESSED = "attachments_processed"
    HISTORY_ASSEMBLED = "history_assembled"
    PROVIDER_DISPATCHED = "provider_dispatched"
    STREAMING = "streaming"
    PERSISTED = "persisted"
    DONE = "done"
    ERRORED = "errored"


@dataclass
class StreamEvent:
    kind: str  # "chunk" | "done" | "error"
    text: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def chunk(cls, text: str) -> "StreamEvent":
        return cls("chunk", text)

    @classmethod
    def done(cls) -> "StreamEvent":
        return cls("done")

    @classmethod
    def error(cls, message: str, **extra: Any) -> "StreamEvent":
        return cls("error", message, extra)

    @property
    def terminal(self) -> bool:
        return self.kind != "chunk"

    def payload(self) -> Dict[str, Any]:
        if self.kind == "chunk":
            return {"chunk": self.text}
        if self.kind == "done":
            return {"done": True}
        return {"error": self.text, **self.extra}


@dataclass
class Turn:
    session_id: str
    message: str
    requested_model: Optional[str]
    has_files: bool
    state: TurnState = TurnState.RECEIVED
    user: Optional[User] = None
    model: str = ""
    route: Optional[Route] = None
    decision: Optional[AccessDecision] = None
    attachments: ProcessedAttachments = field(default_factory=ProcessedAttachments)
    user_text: str = ""
    messages: List[Message] = field(default_factory=list)
    reply: str = ""
    files: List[UploadedFile] = field(default_factory=list)

    @property
    def owner(self) -> User:
        if self.user is None:
            raise RuntimeError(f"turn for session {self.session_id} is not authenticated")
        return self.user

    @property
    def target(self) -> Route:
        if self.route is None:
            raise RuntimeError(f"turn for session {self.session_id} has no route yet")
        return self.route

    def advance(self, state: TurnState) -> None:
        logger.debug("session %s: %s -> %s", self.session_id, self.state.value, state.value)
        self.state = state

    def fail(self, exc: Exception) -> None:
        logger.info("session %s errored in %s: %s", self.session_id, self.state.value, exc)
        self.state = TurnState.ERRORED


class ChatOrchestrator:
    def __init__(
        self,
        *,
        sessions: SessionStore,
        chats: ChatRepository,
        access: AccessController,
        router: ModelRouter,
        identity: IdentityProvider,
    ) -> None:
        self.sessions = sessions
        self.chats = chats
        self.access = access
        self.router = router
        self.identity = identity

    # ---- Received -------------------------------------------------------

    def receive(self, session_id: Optional[str], message: Optional[str], model: Optional[str], *, has_files: bool) -> Turn:
        if not session_id:
            raise IntakeError("Session ID is required.")
        text = (message or "").strip()
        if not text and not has_files:
            raise IntakeError("Message or files are required.")
        return Turn(session_id=session_id, message=text, requested_model=(model or "").strip() or None, has_files=has_files)

    # ---- Received -> Authenticated --------------------------------------

    async def identify(self, authorization: Optional[str]) -> User:
        return await self.identity.verify(bearer_token(authorization))

    async def authenticate(self, turn: Turn, authorization: Optional[str]) -> User:
        try:
            user = await self.identify(authorization)
        except Exception as e:
            turn.fail(e)
            raise
        turn.user = user
        turn.advance(TurnState.AUTHENTICATED)
        return user

    # ---- Authenticated -> ... -> ProviderDispatched ---------------------

    async def prepare(self, turn: Turn, files: List[UploadedFile]) -> Turn:
        try:
            await self._check_access(turn)
            await self._process_attachments(turn, files)
            await self._assemble_history(turn)
            await self._dispatch_gate(turn)
        except Exception as e:
            turn.fail(e)
            raise
        return turn

    async def _check_access(self, turn: Turn) -> None:
        user = turn.owner
        session = await self.sessions.get(turn.session_id)
        if session is not None and session.owner_id != user.id:
            raise SessionOwnershipError("This chat belongs to another user.")
        if session is None:
            record = await self.chats.find_chat(turn.session_id)
            if record is not None and record.user_id != user.id:
                raise SessionOwnershipError("This chat belongs to another user.")

        turn.model = turn.requested_model or (session.selected_model if session else "") or self.router.default_model
        decision = await self.access.evaluate(user.id, turn.session_id, turn.model)
        logger.info(
            "access for %s on %s: allowed=%s subscribed=%s reason=%s",
            user.id, turn.model, decision.allowed, decision.subscribed,
            decision.reason.value if decision.reason else None,
        )
        decision.raise_for_denial()
        turn.decision = decision
        turn.route = self.router.classify(turn.model)
        turn.advance(TurnState.ACCESS_CHECKED)

    async def _process_attachments(self, turn: Turn, files: List[UploadedFile]) -> None:
        turn.files = list(files)
        adapter = turn.target.adapter
        turn.attachments = await process_attachments(
            files,
            adapter.name,
            max_image_bytes=adapter.max_image_bytes,
            max_request_bytes=adapter.max_request_bytes,
        )
        if turn.has_files and not turn.message and not turn.attachments.has_content:
            # the attachments were the whole request and none survived
            raise AttachmentError("None of the attached files could be processed.")
        turn.advance(TurnState.ATTACHMENTS_PROCESSED)

    async def _assemble_history(self, turn: Turn) -> None:
        user = turn.owner
        if await self.sessions.get(turn.session_id) is None:
            seed: List[Message] = []
            try:
                record = await self.chats.get_chat(turn.session_id, user.id)
            except PersistenceError as e:
                logger.error("could not reload chat %s: %s", turn.session_id, e)
                record = None
            if record is not None:
                seed = record.messages
            await self.sessions.ensure(turn.session_id, owner_id=user.id, model=turn.model, seed=seed)
        await self.sessions.select_model(turn.session_id, turn.model)
        if turn.files:
            await self.sessions.add_files(turn.session_id, turn.files)

        prompt = turn.message or ATTACHMENT_PROMPT
        turn.user_text = compose_user_text(prompt, turn.attachments.document_text)
        history = await self.sessions.history(turn.session_id)
        turn.messages = build_messages(history, turn.user_text, turn.attachments.images)
        turn.advance(TurnState.HISTORY_ASSEMBLED)

    async def _dispatch_gate(self, turn: Turn) -> None:
        route = turn.target
        if route.is_premium:
            if turn.decision is None or not turn.decision.subscribed:
                raise AccessDeniedError(AccessReason.PREMIUM_REQUIRED)
            await self.access.confirm_premium(turn.owner.id)
        if not route.adapter.is_configured():
            raise ProviderConfigError(route.provider)
        turn.advance(TurnState.PROVIDER_DISPATCHED)

    # ---- one-shot -------------------------------------------------------

    async def complete(self, turn: Turn) -> str:
        route = turn.target
        try:
            reply = await route.adapter.generate(turn.messages, route.model)
        except ProviderError as e:
            turn.fail(e)
            raise
        turn.reply = reply
        await self._persist(turn)
        turn.advance(TurnState.DONE)
        return reply

    # ---- streaming ------------------------------------------------------

    async def stream(self, turn: Turn) -> AsyncIterator[StreamEvent]:
        """
        Forward adapter chunks in order, then persist and emit ``done``.
        Exactly one terminal event is produced unless the consumer stops early,
        in which case the provider stream is closed and nothing is persisted.
        """
        route = turn.target
        turn.advance(TurnState.STREAMING)
        acc: List[str] = []
        source = route.adapter.stream(turn.messages, route.model)
        try:
            async for delta in source:
                acc.append(delta)
                yield StreamEvent.chunk(delta)
        except ProviderError as e:
            turn.fail(e)
            logger.error("provider error while streaming %s: %s", route.model, e)
            yield StreamEvent.error(str(e), code=e.code)
            return
        except Exception as e:
            turn.fail(e)
            logger.exception("streaming error occurred: %s", e)
            yield StreamEvent.error("Failed to generate AI response", code="stream_error")
            return
        finally:
            await source.aclose()

        turn.reply = "".join(acc)
        await self._persist(turn)
        turn.advance(TurnState.DONE)
        yield StreamEvent.done()

    # ---- Persisted ------------------------------------------------------

    async def _persist(self, turn: Turn) -> None:
        user = turn.owner
        user_message = Message(role="user", content=turn.user_text)
        assistant_message = Message(role="assistant", content=turn.reply)
        try:
            await self.sessions.append(turn.session_id, "user", turn.user_text)
            await self.sessions.append(turn.session_id, "assistant", turn.reply)
        except KeyError:
            # deleted while the reply was in flight; the delete wins
            logger.info("session %s was deleted mid-turn, not storing the reply", turn.session_id)
            turn.advance(TurnState.PERSISTED)
            return
        try:
            await self.chats.save_turn(turn.session_id, user.id, user_message, assistant_message)
        except PersistenceError as e:
            # the user already has the answer; the durable copy misses this turn
            logger.exception("error saving chat %s to database: %s", turn.session_id, e)
        turn.advance(TurnState.PERSISTED)

    # ---- delete ---------------------------------------------------------

    async def delete_session(self, user: User, session_id: str) -> None:
        record = await self.chats.find_chat(session_id)
        if record is not None and record.user_id != user.id:
            raise SessionOwnershipError("This chat belongs to another user.")
        session = await self.sessions.get(session_id)
        if session is not None and session.owner_id != user.id:
            raise SessionOwnershipError("This chat belongs to another user.")
        if record is not None:
            await self.chats.delete_chat(session_id, user.id)
        await self.sessions.delete(session_id)
        logger.info("deleted chat %s for %s", session_id, user.id)
