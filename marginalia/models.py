from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
import posixpath
from typing import Optional
import urllib.parse


DEFAULT_TITLE = "Untitled"


class RawArchive(Mapping):
    """Read-only view of an unpacked archive: internal path -> bytes."""

    def __init__(self, entries: Mapping[str, bytes]) -> None:
        self._entries = dict(entries)

    def __getitem__(self, path: str) -> bytes:
        return self._entries[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"RawArchive({len(self._entries)} entries)"

    def find(self, path: str) -> Optional[bytes]:
        for candidate in _lookup_candidates(path):
            payload = self._entries.get(candidate)
            if payload is not None:
                return payload
        return None


def _lookup_candidates(path: str) -> list[str]:
    raw = path or ""
    candidates = [raw]
    normalized = normalize_member_path(raw)
    candidates.append(normalized)
    decoded = urllib.parse.unquote(normalized)
    candidates.append(decoded)
    deduped: list[str] = []
    for candidate in candidates:
        if candidate and candidate not in deduped:
            deduped.append(candidate)
    return deduped


def normalize_member_path(path: str) -> str:
    normalized = posixpath.normpath((path or "").replace("\\", "/")).lstrip("/")
    while normalized.startswith("../"):
        normalized = normalized[3:]
    return "" if normalized in {"", ".", ".."} else normalized


def join_member_path(base: str, href: str) -> str:
    return f"{base}/{href}" if base else href


def member_dir(path: str) -> str:
    index = path.rfind("/")
    return path[:index] if index > 0 else ""


@dataclass(frozen=True)
class ContainerDescriptor:
    package_path: str

    @property
    def package_base_path(self) -> str:
        return member_dir(self.package_path)


@dataclass
class PackageDocument:
    format_version: str
    metadata: dict = field(default_factory=dict)
    manifest: dict = field(default_factory=dict)
    spine: dict = field(default_factory=dict)


@dataclass
class Metadata:
    title: str = DEFAULT_TITLE
    author: Optional[str] = None
    authors: Optional[list[str]] = None
    publisher: Optional[str] = None
    language: Optional[str] = None
    isbn: Optional[str] = None
    description: Optional[str] = None
    subjects: Optional[list[str]] = None
    date: Optional[str] = None
    rights: Optional[str] = None
    cover_image_id: Optional[str] = None
    format_version: str = ""


@dataclass(frozen=True)
class ManifestItem:
    id: str
    href: str
    media_type: str
    properties: tuple[str, ...] = ()
    is_navigation_document: bool = False
    is_declared_cover_image: bool = False


@dataclass(frozen=True)
class SpineItem:
    manifest_ref: str
    is_linear: bool = True


@dataclass(frozen=True)
class Chapter:
    chapter_number: int
    spine_index: int
    title: Optional[str]
    source_path: str
    content: str
    word_count: int


@dataclass(frozen=True)
class Asset:
    original_path: str
    raw_bytes: bytes
    media_type: str = "application/octet-stream"
    kind: str = "other"


@dataclass(frozen=True)
class CoverImage:
    extension: str
    raw_bytes: bytes
    source_path: str


@dataclass
class ParsedBook:
    metadata: Metadata
    manifest: list[ManifestItem]
    spine: list[SpineItem]
    package_path: str
    package_base_path: str
    cover_manifest_item: Optional[ManifestItem] = None
    navigation_item: Optional[ManifestItem] = None
    legacy_toc_item: Optional[ManifestItem] = None

    def manifest_item(self, item_id: str) -> Optional[ManifestItem]:
        for item in self.manifest:
            if item.id == item_id:
                return item
        return None


@dataclass
class IngestionResult:
    parsed_book: ParsedBook
    book_record: dict
    chapters: list[Chapter] = field(default_factory=list)
    assets: dict[str, Asset] = field(default_factory=dict)
    cover_image: Optional[CoverImage] = None


def book_record(metadata: Metadata) -> dict:
    return {
        "title": metadata.title,
        "author": metadata.author,
        "publisher": metadata.publisher,
        "language": metadata.language,
        "isbn": metadata.isbn,
        "description": metadata.description,
        "epub_version": metadata.format_version or None,
    }
