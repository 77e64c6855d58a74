"""
Turns uploaded files into provider-agnostic content.

Images become ``ImagePart`` (raw bytes + mime type) and documents become one
prose summary block. Wire encoding (data URLs, inline base64, ...) belongs to
the adapters. Individual failures drop or placeholder the file and never abort
the whole batch.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import aiofiles
import aiofiles.os

from chat_gateway.core.errors import AttachmentError
from chat_gateway.schemas.messages import ImagePart, UploadedFile

logger = logging.getLogger(__name__)

FULL_READ_LIMIT = 1024 * 1024
TRUNCATED_READ_BYTES = 100 * 1024
TRUNCATION_MARKER = "\n\n... [Content truncated due to size] ..."
BINARY_MARKER = "[Binary file]"
DOCUMENTS_HEADER = "I've attached the following text-based files:"


@dataclass
class ProcessedAttachments:
    images: List[ImagePart] = field(default_factory=list)
    document_text: str = ""
    dropped: List[str] = field(default_factory=list)

    @property
    def has_content(self) -> bool:
        return bool(self.images or self.document_text)


def is_text_like(mime_type: str) -> bool:
    return mime_type.startswith("text/") or "json" in mime_type or "csv" in mime_type


async def read_document(path: str) -> str:
    """Read a text document, truncating anything above 1 MiB to its first 100 KiB."""
    try:
        stat = await aiofiles.os.stat(path)
        async with aiofiles.open(path, "rb") as f:
            if stat.st_size > FULL_READ_LIMIT:
                logger.warning("file too large for full read (%s bytes): %s", stat.st_size, path)
                raw = await f.read(TRUNCATED_READ_BYTES)
                return raw.decode("utf-8", errors="replace") + TRUNCATION_MARKER
            raw = await f.read()
    except OSError as e:
        logger.error("error reading file %s: %s", path, e)
        return f"[Could not read file: {e.strerror or type(e).__name__}]"
    return raw.decode("utf-8", errors="replace")


async def _describe_document(file: UploadedFile) -> str:
    entry = f"- {file.original_name} ({file.mime_type}, {file.size_bytes / 1024:.2f} KB)"
    if not is_text_like(file.mime_type):
        return f"{entry}\n{BINARY_MARKER}"
    content = await read_document(file.storage_handle)
    return f"{entry}\n\nContent of {file.original_name}:\n```\n{content}\n```"


async def summarize_documents(files: List[UploadedFile]) -> str:
    if not files:
        return ""
    entries = await asyncio.gather(*(_describe_document(f) for f in files))
    return DOCUMENTS_HEADER + "\n" + "\n\n".join(entries) + "\n\n"


async def load_image(file: UploadedFile, *, max_bytes: int, budget: Optional[int] = None) -> ImagePart:
    try:
        stat = await aiofiles.os.stat(file.storage_handle)
    except OSError as e:
        raise AttachmentError(f"file unavailable: {e.strerror or type(e).__name__}") from e
    if stat.st_size > max_bytes:
        raise AttachmentError(f"too large ({stat.st_size} bytes, limit {max_bytes})")
    if budget is not None and stat.st_size > budget:
        raise AttachmentError(f"request image budget exhausted ({stat.st_size} bytes, {budget} left)")
    try:
        async with aiofiles.open(file.storage_handle, "rb") as f:
            data = await f.read()
    except OSError as e:
        raise AttachmentError(f"read failed: {e.strerror or type(e).__name__}") from e
    return ImagePart(mime_type=file.mime_type, data=data)


async def process_attachments(
    files: List[UploadedFile],
    provider: str,
    *,
    max_image_bytes: int,
    max_request_bytes: Optional[int] = None,
) -> ProcessedAttachments:
    """
    Classify and load ``files`` for a turn headed to ``provider``.

    Images above the provider's per-file ceiling, or beyond what is left of its
    per-request budget, are dropped with a logged reason. Input order is kept
    within each category.
    """
    result = ProcessedAttachments()
    images = [f for f in files if f.is_image]
    documents = [f for f in files if not f.is_image]
    logger.info("classified files for %s: %d images, %d documents", provider, len(images), len(documents))

    budget = max_request_bytes
    for file in images:
        try:
            part = await load_image(file, max_bytes=max_image_bytes, budget=budget)
        except AttachmentError as e:
            logger.warning("dropping image %s for %s: %s", file.original_name, provider, e)
            result.dropped.append(f"{file.original_name}: {e}")
            continue
        if budget is not None:
            budget -= len(part.data)
        result.images.append(part)

    result.document_text = await summarize_documents(documents)
    return result
