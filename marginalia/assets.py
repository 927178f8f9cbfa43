from __future__ import annotations

from pathlib import PurePosixPath
from typing import Optional

from .chapters import is_chapter_media_type
from .diagnostics import Diagnostics
from .models import Asset, ManifestItem, RawArchive, join_member_path

ASSET_KINDS: dict[str, tuple[set[str], set[str]]] = {
    "image": (
        {"image/jpeg", "image/png", "image/gif", "image/svg+xml", "image/webp", "image/bmp"},
        {".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".bmp"},
    ),
    "font": (
        {
            "font/ttf",
            "font/otf",
            "font/woff",
            "font/woff2",
            "application/font-woff",
            "application/font-sfnt",
            "application/vnd.ms-opentype",
            "application/x-font-ttf",
            "application/x-font-otf",
        },
        {".ttf", ".otf", ".woff", ".woff2"},
    ),
    "stylesheet": ({"text/css"}, {".css"}),
}


def asset_kind(media_type: str, href: str) -> str:
    normalized = (media_type or "").strip().lower()
    for kind, (media_types, _) in ASSET_KINDS.items():
        if normalized in media_types:
            return kind
    suffix = PurePosixPath(href or "").suffix.lower()
    for kind, (_, suffixes) in ASSET_KINDS.items():
        if suffix in suffixes:
            return kind
    return "other"


def classify_assets(
    manifest: list[ManifestItem],
    package_base_path: str,
    archive: RawArchive,
    diagnostics: Optional[Diagnostics] = None,
) -> dict[str, Asset]:
    """Collect every non-chapter manifest resource, keyed by its manifest href."""
    assets: dict[str, Asset] = {}
    for item in manifest:
        if is_chapter_media_type(item.media_type) or not item.href:
            continue
        if item.href in assets:
            continue
        path = join_member_path(package_base_path, item.href)
        payload = archive.find(path)
        if payload is None:
            if diagnostics is not None:
                diagnostics.warn(f"asset file not found: {path}; skipped")
            continue
        assets[item.href] = Asset(
            original_path=item.href,
            raw_bytes=payload,
            media_type=item.media_type or "application/octet-stream",
            kind=asset_kind(item.media_type, item.href),
        )
    return assets
