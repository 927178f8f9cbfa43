from __future__ import annotations

import datetime as dt
import json
import sqlite3
from pathlib import Path
from typing import Optional

from .env import read_env
from .models import Asset, Chapter, IngestionResult
from .storage import StoredBook, storage_dir

DB_FILENAME = "marginalia.db"


def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def db_path() -> Path:
    env = read_env("MARGINALIA_DB_PATH")
    if env:
        return Path(env)
    return storage_dir() / DB_FILENAME


def connect() -> sqlite3.Connection:
    path = db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db() -> None:
    conn = connect()
    try:
        with conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS books (
                    book_id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    author TEXT,
                    authors_json TEXT NOT NULL DEFAULT '[]',
                    publisher TEXT,
                    language TEXT,
                    isbn TEXT,
                    description TEXT,
                    subjects_json TEXT NOT NULL DEFAULT '[]',
                    published TEXT,
                    rights TEXT,
                    epub_version TEXT,
                    cover_image_key TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chapters (
                    book_id TEXT NOT NULL REFERENCES books(book_id) ON DELETE CASCADE,
                    chapter_number INTEGER NOT NULL,
                    spine_index INTEGER NOT NULL,
                    title TEXT,
                    href TEXT NOT NULL,
                    html_content TEXT NOT NULL,
                    word_count INTEGER,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (book_id, spine_index)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS assets (
                    book_id TEXT NOT NULL REFERENCES books(book_id) ON DELETE CASCADE,
                    original_path TEXT NOT NULL,
                    s3_key TEXT NOT NULL UNIQUE,
                    mime_type TEXT NOT NULL,
                    kind TEXT NOT NULL DEFAULT 'other',
                    file_size INTEGER,
                    uploaded_at TEXT NOT NULL,
                    PRIMARY KEY (book_id, original_path)
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_books_created ON books(created_at)")
    finally:
        conn.close()


def _json_list(raw: Optional[str]) -> list[str]:
    try:
        parsed = json.loads(raw or "[]")
    except json.JSONDecodeError:
        return []
    return [str(item) for item in parsed] if isinstance(parsed, list) else []


def _row_to_book(row: sqlite3.Row) -> dict:
    return {
        "id": row["book_id"],
        "title": row["title"],
        "author": row["author"],
        "authors": _json_list(row["authors_json"]),
        "publisher": row["publisher"],
        "language": row["language"],
        "isbn": row["isbn"],
        "description": row["description"],
        "subjects": _json_list(row["subjects_json"]),
        "published": row["published"],
        "rights": row["rights"],
        "epubVersion": row["epub_version"],
        "coverImageKey": row["cover_image_key"],
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }


def _row_to_chapter(row: sqlite3.Row) -> dict:
    return {
        "bookId": row["book_id"],
        "chapterNumber": row["chapter_number"],
        "spineIndex": row["spine_index"],
        "title": row["title"],
        "href": row["href"],
        "htmlContent": row["html_content"],
        "wordCount": row["word_count"],
        "createdAt": row["created_at"],
    }


def insert_book(
    conn: sqlite3.Connection,
    book_id: str,
    record: dict,
    *,
    authors: Optional[list[str]] = None,
    subjects: Optional[list[str]] = None,
    published: Optional[str] = None,
    rights: Optional[str] = None,
    cover_image_key: Optional[str] = None,
) -> None:
    now = _now_iso()
    conn.execute(
        """
        INSERT INTO books (
            book_id, title, author, authors_json, publisher, language, isbn, description,
            subjects_json, published, rights, epub_version, cover_image_key, created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            book_id,
            record.get("title") or "",
            record.get("author"),
            json.dumps(list(authors or []), ensure_ascii=False),
            record.get("publisher"),
            record.get("language"),
            record.get("isbn"),
            record.get("description"),
            json.dumps(list(subjects or []), ensure_ascii=False),
            published,
            rights,
            record.get("epub_version"),
            cover_image_key,
            now,
            now,
        ),
    )


def insert_chapters(conn: sqlite3.Connection, book_id: str, chapters: list[Chapter]) -> None:
    now = _now_iso()
    conn.executemany(
        """
        INSERT INTO chapters (
            book_id, chapter_number, spine_index, title, href, html_content, word_count, created_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            (
                book_id,
                chapter.chapter_number,
                chapter.spine_index,
                chapter.title,
                chapter.source_path,
                chapter.content,
                chapter.word_count,
                now,
            )
            for chapter in chapters
        ],
    )


def insert_assets(conn: sqlite3.Connection, book_id: str, assets: list[Asset], keys: dict[str, str]) -> None:
    now = _now_iso()
    conn.executemany(
        """
        INSERT INTO assets (book_id, original_path, s3_key, mime_type, kind, file_size, uploaded_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        [
            (
                book_id,
                asset.original_path,
                keys[asset.original_path],
                asset.media_type,
                asset.kind,
                len(asset.raw_bytes),
                now,
            )
            for asset in assets
            if asset.original_path in keys
        ],
    )


def list_books() -> list[dict]:
    conn = connect()
    try:
        rows = conn.execute("SELECT * FROM books ORDER BY created_at, book_id").fetchall()
    finally:
        conn.close()
    return [_row_to_book(row) for row in rows]


def get_book(book_id: str) -> Optional[dict]:
    conn = connect()
    try:
        row = conn.execute("SELECT * FROM books WHERE book_id = ?", (book_id,)).fetchone()
    finally:
        conn.close()
    return _row_to_book(row) if row else None


def list_chapters(book_id: str) -> list[dict]:
    conn = connect()
    try:
        rows = conn.execute(
            "SELECT spine_index, chapter_number, title, word_count FROM chapters WHERE book_id = ? ORDER BY spine_index",
            (book_id,),
        ).fetchall()
    finally:
        conn.close()
    return [
        {
            "spineIndex": row["spine_index"],
            "chapterNumber": row["chapter_number"],
            "title": row["title"],
            "wordCount": row["word_count"],
        }
        for row in rows
    ]


def get_chapter(book_id: str, spine_index: int) -> Optional[dict]:
    conn = connect()
    try:
        row = conn.execute(
            "SELECT * FROM chapters WHERE book_id = ? AND spine_index = ?",
            (book_id, spine_index),
        ).fetchone()
    finally:
        conn.close()
    return _row_to_chapter(row) if row else None


def get_asset(book_id: str, original_path: str) -> Optional[dict]:
    conn = connect()
    try:
        row = conn.execute(
            "SELECT original_path, s3_key, mime_type, kind, file_size FROM assets WHERE book_id = ? AND original_path = ?",
            (book_id, original_path),
        ).fetchone()
    finally:
        conn.close()
    if not row:
        return None
    return {
        "originalPath": row["original_path"],
        "s3Key": row["s3_key"],
        "mimeType": row["mime_type"],
        "kind": row["kind"],
        "fileSize": row["file_size"],
    }


def save_ingestion(book_id: str, result: IngestionResult, stored: StoredBook) -> dict:
    metadata = result.parsed_book.metadata
    conn = connect()
    try:
        with conn:
            insert_book(
                conn,
                book_id,
                result.book_record,
                authors=metadata.authors,
                subjects=metadata.subjects,
                published=metadata.date,
                rights=metadata.rights,
                cover_image_key=stored.cover_key,
            )
            insert_chapters(conn, book_id, result.chapters)
            insert_assets(conn, book_id, list(result.assets.values()), stored.asset_keys)
        row = conn.execute("SELECT * FROM books WHERE book_id = ?", (book_id,)).fetchone()
    finally:
        conn.close()
    return _row_to_book(row)
