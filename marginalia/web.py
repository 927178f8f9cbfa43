from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Optional

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from .db import get_asset, get_book, get_chapter, init_db, list_books, list_chapters, save_ingestion
from .diagnostics import LoggerDiagnostics, RecordingDiagnostics
from .env import read_int_env
from .errors import ArchiveFormatError, IngestError
from .ingest import ingest
from .models import IngestionResult, normalize_member_path
from .storage import book_prefix, delete_prefix, new_book_id, read_object, store_ingestion

BOOK_ID_RE = re.compile(r"^[a-f0-9]{32}$")
DEFAULT_MAX_UPLOAD_BYTES = 100 * 1024 * 1024
EPUB_CONTENT_TYPES = {"application/epub+zip", "application/zip", "application/octet-stream", ""}
COVER_MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
}

app = FastAPI()
logger = logging.getLogger("marginalia.web")


@app.on_event("startup")
async def startup() -> None:
    init_db()


def max_upload_bytes() -> int:
    return read_int_env("MARGINALIA_MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES)


def _error(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "code": code})


def _ensure_book_id(book_id: str) -> None:
    if not BOOK_ID_RE.match(book_id or ""):
        raise HTTPException(status_code=404, detail="Book not found")


def _looks_like_epub(upload: UploadFile) -> bool:
    name = (upload.filename or "").lower()
    content_type = (upload.content_type or "").split(";", 1)[0].strip().lower()
    if name and not name.endswith(".epub"):
        return False
    return content_type in EPUB_CONTENT_TYPES


async def _read_upload(upload: UploadFile, limit: int) -> Optional[bytes]:
    payload = await upload.read(limit + 1)
    if len(payload) > limit:
        return None
    return payload


def _persist(result: IngestionResult) -> dict:
    book_id = new_book_id()
    stored = store_ingestion(book_id, result)
    try:
        return save_ingestion(book_id, result, stored)
    except Exception:
        delete_prefix(book_prefix(book_id))
        raise


@app.put("/epub")
async def upload_epub(file: Optional[UploadFile] = File(None)):
    if file is None:
        return _error(400, "No file provided", "NO_FILE")
    if not _looks_like_epub(file):
        return _error(415, "Only .epub uploads are accepted", "UNSUPPORTED_TYPE")

    limit = max_upload_bytes()
    payload = await _read_upload(file, limit)
    if payload is None:
        return _error(413, f"Upload exceeds {limit} bytes", "TOO_LARGE")
    if not payload:
        return _error(400, "Uploaded file is empty", "EMPTY_FILE")

    diagnostics = RecordingDiagnostics(forward=LoggerDiagnostics())
    try:
        result = await run_in_threadpool(ingest, payload, diagnostics)
    except ArchiveFormatError as exc:
        logger.warning("rejected upload %r: %s", file.filename, exc)
        return _error(400, str(exc), exc.code)
    except IngestError as exc:
        logger.warning("rejected upload %r: %s", file.filename, exc)
        return _error(422, str(exc), exc.code)

    book = await run_in_threadpool(_persist, result)
    logger.info(
        "stored book %s (%d chapters, %d assets) from %r",
        book["id"],
        len(result.chapters),
        len(result.assets),
        file.filename,
    )
    return {
        "book": book,
        "chaptersCount": len(result.chapters),
        "assetsCount": len(result.assets),
        "warnings": list(diagnostics.warnings),
    }


@app.get("/epub")
async def books_index():
    return {"books": list_books()}


@app.get("/epub/{book_id}")
async def book_detail(book_id: str):
    _ensure_book_id(book_id)
    book = get_book(book_id)
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return {**book, "chapters": [{"spineIndex": ch["spineIndex"], "title": ch["title"]} for ch in list_chapters(book_id)]}


@app.get("/epub/{book_id}/chapters/{index}")
async def chapter_content(book_id: str, index: str):
    _ensure_book_id(book_id)
    try:
        spine_index = int(index)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid chapter index")
    chapter = get_chapter(book_id, spine_index)
    if chapter is None:
        raise HTTPException(status_code=404, detail="Chapter not found")
    return chapter


@app.get("/epub/{book_id}/assets/{asset_path:path}")
async def asset_content(book_id: str, asset_path: str):
    _ensure_book_id(book_id)
    asset = get_asset(book_id, asset_path)
    if asset is None:
        normalized = normalize_member_path(asset_path)
        if normalized and normalized != asset_path:
            asset = get_asset(book_id, normalized)
    if asset is None:
        raise HTTPException(status_code=404, detail="Asset not found")
    payload = read_object(asset["s3Key"])
    if payload is None:
        raise HTTPException(status_code=404, detail="Asset not found")
    return Response(content=payload, media_type=asset["mimeType"])


@app.get("/epub/{book_id}/cover")
async def cover_content(book_id: str):
    _ensure_book_id(book_id)
    book = get_book(book_id)
    key = book.get("coverImageKey") if book else None
    payload = read_object(key) if key else None
    if payload is None:
        raise HTTPException(status_code=404, detail="Cover not found")
    media_type = COVER_MEDIA_TYPES.get(PurePosixPath(key).suffix.lower(), "application/octet-stream")
    return Response(content=payload, media_type=media_type)


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}
