import logging
import os
import time
import uuid
from pathlib import Path
from typing import BinaryIO, Dict, Any

from chatline.errors import ValidationError
from chatline.schemas.message import kind_from_mime


logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp",
    "video/mp4", "video/quicktime", "video/x-msvideo",
    "application/pdf", "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/plain",
}

# directory per kind; audio is not pluralized on disk
KIND_DIRS = {"image": "images", "video": "videos", "audio": "audio", "document": "documents"}

CHUNK_SIZE = 1024 * 1024


def is_allowed(mime_type: str) -> bool:
    # any audio/* is accepted for voice messages
    return mime_type in ALLOWED_MIME_TYPES or mime_type.startswith("audio/")


class UploadService:
    """Stores media on local disk; messages only ever carry the returned URL."""

    def __init__(self, media_dir: str, max_bytes: int, url_prefix: str = "/uploads") -> None:
        self._root = Path(media_dir)
        self._max_bytes = max_bytes
        self._url_prefix = url_prefix.rstrip("/")

    def ensure_dirs(self) -> None:
        for sub in KIND_DIRS.values():
            (self._root / sub).mkdir(parents=True, exist_ok=True)

    def save(self, source: BinaryIO, original_name: str, mime_type: str) -> Dict[str, Any]:
        mime_type = (mime_type or "").lower()
        if not is_allowed(mime_type):
            raise ValidationError(f"File type {mime_type or 'unknown'} is not allowed")
        kind = kind_from_mime(mime_type)
        subdir = KIND_DIRS[kind]
        safe_name = os.path.basename(original_name or "file")
        stem, ext = os.path.splitext(safe_name)
        stored_name = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}-{stem}{ext}"
        target = self._root / subdir / stored_name
        target.parent.mkdir(parents=True, exist_ok=True)

        size = 0
        with target.open("wb") as out:
            while True:
                chunk = source.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > self._max_bytes:
                    break
                out.write(chunk)
        if size > self._max_bytes:
            target.unlink(missing_ok=True)
            raise ValidationError("File too large")
        if size == 0:
            target.unlink(missing_ok=True)
            raise ValidationError("No file uploaded")

        logger.info("Stored upload %s (%s bytes, %s)", stored_name, size, mime_type)
        return {
            "fileUrl": f"{self._url_prefix}/{subdir}/{stored_name}",
            "fileName": safe_name,
            "fileSize": size,
            "mimeType": mime_type,
            "messageType": kind,
        }
