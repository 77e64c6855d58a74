import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import StreamingResponse
from starlette.datastructures import UploadFile

from chat_gateway.api.deps import get_orchestrator
from chat_gateway.core.errors import GatewayError, IntakeError, error_payload, to_http_exception
from chat_gateway.providers.base import ProviderError
from chat_gateway.schemas.chat import ChatResponse, DeleteResponse
from chat_gateway.schemas.messages import UploadedFile
from chat_gateway.services.chat_service import ChatOrchestrator, Turn
from chat_gateway.services.uploads import save_uploads

router = APIRouter(tags=["chat"])
logger = logging.getLogger(__name__)

INTAKE_FIELDS = ("sessionId", "message", "model")
SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


def format_sse_event(data: Dict[str, Any]) -> str:
    return f"data: {json.dumps(data)}\n\n"


async def read_intake(request: Request) -> Tuple[Dict[str, Optional[str]], List[Tuple[str, UploadFile]]]:
    """Accept either a JSON body or multipart form data; file parts may use any field name."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise IntakeError("Malformed JSON body.")
        if not isinstance(body, dict):
            raise IntakeError("Malformed JSON body.")
        return {k: (str(body[k]) if body.get(k) is not None else None) for k in INTAKE_FIELDS}, []

    form = await request.form()
    fields: Dict[str, Optional[str]] = {k: None for k in INTAKE_FIELDS}
    uploads: List[Tuple[str, UploadFile]] = []
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            if value.filename:
                uploads.append((key, value))
        elif key in fields:
            fields[key] = value
    return fields, uploads


async def _store_uploads(session_id: str, uploads: List[Tuple[str, UploadFile]]) -> List[UploadedFile]:
    saved: List[UploadedFile] = []
    for field, upload in uploads:
        saved.extend(await save_uploads(session_id, [upload], field=field))
    return saved


async def _open_turn(request: Request, authorization: Optional[str], orchestrator: ChatOrchestrator) -> Turn:
    # cheap intake checks first, then identity, then disk
    fields, uploads = await read_intake(request)
    turn = orchestrator.receive(fields["sessionId"], fields["message"], fields["model"], has_files=bool(uploads))
    await orchestrator.authenticate(turn, authorization)
    files = await _store_uploads(turn.session_id, uploads)
    return await orchestrator.prepare(turn, files)


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: Request,
    authorization: Optional[str] = Header(None),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    try:
        turn = await _open_turn(request, authorization, orchestrator)
        reply = await orchestrator.complete(turn)
    except (GatewayError, ProviderError) as e:
        logger.info("chat request failed: %s", e)
        raise to_http_exception(e)

    return ChatResponse(
        reply=reply,
        session_id=turn.session_id,
        model=turn.target.model,
        provider=turn.target.provider,
    )


@router.post("/chat/stream")
async def chat_stream(
    request: Request,
    authorization: Optional[str] = Header(None),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    try:
        turn = await _open_turn(request, authorization, orchestrator)
    except (GatewayError, ProviderError) as e:
        # failures before dispatch still answer as an event stream carrying the status
        logger.info("stream request rejected: %s", e)
        status_code = getattr(e, "status_code", 500)
        return StreamingResponse(
            iter([format_sse_event(error_payload(e))]),
            status_code=status_code,
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    async def streamer() -> AsyncIterator[str]:
        events = orchestrator.stream(turn)
        try:
            async for event in events:
                if not event.terminal and await request.is_disconnected():
                    logger.info("client disconnected, stopping stream")
                    break
                yield format_sse_event(event.payload())
        finally:
            await events.aclose()

    headers = {**SSE_HEADERS, "X-Session-Id": turn.session_id}
    return StreamingResponse(streamer(), media_type="text/event-stream", headers=headers)


@router.delete("/chat/{session_id}", response_model=DeleteResponse)
async def delete_chat(
    session_id: str,
    authorization: Optional[str] = Header(None),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    try:
        user = await orchestrator.identify(authorization)
        await orchestrator.delete_session(user, session_id)
    except GatewayError as e:
        raise to_http_exception(e)
    return DeleteResponse(success=True)
