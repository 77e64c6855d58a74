import logging
import secrets
import time
from pathlib import Path
from typing import List, Optional

import aiofiles
from starlette.datastructures import UploadFile

from chat_gateway.core import config
from chat_gateway.core.errors import UploadTooLargeError
from chat_gateway.schemas.messages import UploadedFile

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def is_accepted_type(mime_type: str) -> bool:
    return (
        mime_type.startswith("image/")
        or "pdf" in mime_type
        or mime_type.startswith("text/")
        or "application/json" in mime_type
        or "csv" in mime_type
    )


def _safe_segment(value: str) -> str:
    return "".join(c for c in value if c.isalnum() or c in "-_") or "unknown"


def _unique_name(field: str, original: str) -> str:
    suffix = Path(original).suffix
    return f"{_safe_segment(field)}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{suffix}"


async def save_uploads(
    session_id: str,
    uploads: List[UploadFile],
    *,
    upload_dir: Optional[str] = None,
    max_bytes: Optional[int] = None,
    field: str = "files",
) -> List[UploadedFile]:
    """Write multipart uploads under ``<upload_dir>/<session_id>/`` and describe them."""
    root = Path(upload_dir or config.UPLOAD_DIR) / _safe_segment(session_id)
    limit = max_bytes or config.MAX_UPLOAD_BYTES
    saved: List[UploadedFile] = []

    for upload in uploads:
        original = upload.filename or "unknown"
        mime_type = upload.content_type or "application/octet-stream"
        if not is_accepted_type(mime_type):
            logger.info("rejecting file %s with mimetype %s", original, mime_type)
            continue

        root.mkdir(parents=True, exist_ok=True)
        file_name = _unique_name(field, original)
        target = root / file_name
        size = 0
        async with aiofiles.open(target, "wb") as out:
            while chunk := await upload.read(CHUNK_SIZE):
                size += len(chunk)
                if size > limit:
                    break
                await out.write(chunk)
        if size > limit:
            target.unlink(missing_ok=True)
            raise UploadTooLargeError(f"File too large. Maximum size is {limit // (1024 * 1024)}MB.")

        saved.append(UploadedFile(
            file_name=file_name,
            original_name=original,
            mime_type=mime_type,
            size_bytes=size,
            storage_handle=str(target),
        ))

    if saved:
        logger.info("stored %d uploads for session %s", len(saved), session_id)
    return saved
