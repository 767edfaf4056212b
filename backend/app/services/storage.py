"""Blob storage for uploaded documents, kept under ``storage_dir/<key>``."""

import logging
import re
import time
from pathlib import Path

from app.config import settings

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def _ensure_root() -> Path:
    root = Path(settings.storage_dir).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def generate_key(user_id: int, folder_id: object | None, filename: str) -> str:
    timestamp = int(time.time() * 1000)
    safe_name = _UNSAFE_FILENAME_CHARS.sub("_", filename)
    return f"{user_id}/{folder_id or 'root'}/{timestamp}-{safe_name}"


def blob_path(key: str) -> Path:
    root = _ensure_root()
    path = (root / key).resolve()
    if not path.is_relative_to(root) or path == root:
        raise ValueError(f"Invalid storage key: {key!r}")
    return path


def public_url(key: str) -> str:
    return f"{settings.storage_public_url.rstrip('/')}/{key}"


def store(key: str, data: bytes) -> str:
    path = blob_path(key)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    logger.info("Stored blob", extra={"key": key, "size": len(data)})
    return public_url(key)


def read(key: str) -> bytes:
    return blob_path(key).read_bytes()


def delete(key: str) -> bool:
    path = blob_path(key)
    if not path.exists():
        return False
    path.unlink()
    logger.info("Deleted blob", extra={"key": key})
    return True
