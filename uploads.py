# uploads.py
"""
Attachment checks and storage for chat uploads.

A request's files are all checked before any of them is written, so a bad
file rejects the whole request and leaves nothing on disk.
"""
import logging
import random
import time
from pathlib import Path
from typing import List, Sequence, Tuple

import aiofiles
from fastapi import UploadFile

from errors import AttachmentRejected, BackendError
from models import Attachment
from settings import Settings

logger = logging.getLogger("farmer_chat.uploads")

FIELD_NAME = "files"


def stored_name(original: str) -> str:
    suffix = f"{int(time.time() * 1000)}-{random.randint(0, 999_999_999)}"
    return f"{FIELD_NAME}-{suffix}{Path(original).suffix}"


def is_allowed_type(content_type: str, settings: Settings) -> bool:
    return any(content_type.startswith(p) for p in settings.ALLOWED_MEDIA_PREFIXES)


async def read_and_validate(files: Sequence[UploadFile], settings: Settings) -> List[Tuple[UploadFile, bytes]]:
    """Check count, media type and size of every upload. Returns (file, body) pairs."""
    files = [f for f in files if f.filename]
    if len(files) > settings.MAX_FILES:
        raise AttachmentRejected(f"Maximum {settings.MAX_FILES} files allowed")

    for f in files:
        if not is_allowed_type(f.content_type or "", settings):
            raise AttachmentRejected(details=f"{f.filename}: {f.content_type}")

    # declared sizes first, so an oversized file is rejected without reading anything
    for f in files:
        if f.size is not None and f.size > settings.MAX_FILE_SIZE:
            raise _too_large(f, settings)

    accepted = []
    for f in files:
        body = await f.read()
        if len(body) > settings.MAX_FILE_SIZE:
            raise _too_large(f, settings)
        accepted.append((f, body))
    return accepted


def _too_large(f: UploadFile, settings: Settings) -> AttachmentRejected:
    return AttachmentRejected(
        f"File too large (max {settings.MAX_FILE_SIZE // (1024 * 1024)}MB)",
        details=f.filename,
        status_code=413,
    )


async def store(accepted: Sequence[Tuple[UploadFile, bytes]], upload_dir: Path, base_url: str) -> List[Attachment]:
    attachments = []
    for f, body in accepted:
        name = stored_name(f.filename)
        try:
            upload_dir.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(upload_dir / name, "wb") as out:
                await out.write(body)
        except OSError as e:
            raise BackendError("Failed to store uploaded file.", details=str(e)) from e
        attachments.append(Attachment(
            filename=f.filename,
            url=f"{base_url.rstrip('/')}/uploads/{name}",
            type=f.content_type,
        ))
        logger.info("Stored upload %s as %s (%d bytes)", f.filename, name, len(body))
    return attachments
