from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import re
import shutil
from typing import Optional
import uuid

from .env import read_env
from .models import CoverImage, IngestionResult, normalize_member_path

BASE_DIR = Path(__file__).resolve().parent.parent
STORAGE_DIR_ENV = "MARGINALIA_STORAGE_DIR"
BOOKS_PREFIX = "books"
COVER_PREFIX = "cover"
EXTENSION_RE = re.compile(r"^\.[A-Za-z0-9]{1,5}$")


@dataclass
class StoredBook:
    asset_keys: dict[str, str] = field(default_factory=dict)
    cover_key: Optional[str] = None


def storage_dir() -> Path:
    env = read_env(STORAGE_DIR_ENV)
    base = Path(env) if env else BASE_DIR / "storage"
    base.mkdir(parents=True, exist_ok=True)
    return base


def new_book_id() -> str:
    return uuid.uuid4().hex


def book_prefix(book_id: str) -> str:
    return f"{BOOKS_PREFIX}/{book_id}"


def asset_key(book_id: str, original_path: str) -> str:
    return f"{book_prefix(book_id)}/assets/{normalize_member_path(original_path)}"


def _sniff_image_extension(data: bytes) -> str:
    if data.startswith(b"\xff\xd8\xff"):
        return ".jpg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return ".png"
    if data[:6] in {b"GIF87a", b"GIF89a"}:
        return ".gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return ".webp"
    return ".jpg"


def cover_extension(cover: CoverImage) -> str:
    ext = (cover.extension or "").lower()
    if EXTENSION_RE.match(ext):
        return ext
    return _sniff_image_extension(cover.raw_bytes)


def cover_key(book_id: str, cover: CoverImage) -> str:
    return f"{book_prefix(book_id)}/{COVER_PREFIX}{cover_extension(cover)}"


def _object_path(key: str) -> Path:
    canonical = normalize_member_path(key)
    if not canonical or canonical != key.strip("/"):
        raise ValueError(f"invalid storage key: {key!r}")
    base = storage_dir().resolve()
    path = (base / canonical).resolve()
    if base not in path.parents:
        raise ValueError(f"storage key escapes the storage root: {key!r}")
    return path


def write_object(key: str, data: bytes) -> int:
    path = _object_path(key)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        tmp_path.write_bytes(data)
        tmp_path.replace(path)
    finally:
        tmp_path.unlink(missing_ok=True)
    return len(data)


def read_object(key: str) -> Optional[bytes]:
    try:
        path = _object_path(key)
    except ValueError:
        return None
    if not path.is_file():
        return None
    return path.read_bytes()


def delete_prefix(prefix: str) -> None:
    path = _object_path(prefix)
    if path.is_dir():
        shutil.rmtree(path, ignore_errors=True)
    else:
        path.unlink(missing_ok=True)


def store_ingestion(book_id: str, result: IngestionResult) -> StoredBook:
    """Write assets and the cover of one ingested book; all-or-nothing."""
    stored = StoredBook()
    try:
        for original_path, asset in result.assets.items():
            key = asset_key(book_id, original_path)
            write_object(key, asset.raw_bytes)
            stored.asset_keys[original_path] = key
        if result.cover_image is not None:
            key = cover_key(book_id, result.cover_image)
            write_object(key, result.cover_image.raw_bytes)
            stored.cover_key = key
    except Exception:
        delete_prefix(book_prefix(book_id))
        raise
    return stored
