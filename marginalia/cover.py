from __future__ import annotations

from pathlib import PurePosixPath
from typing import Optional

from lxml import etree as LXML_ET

from .chapters import parse_markup
from .diagnostics import Diagnostics
from .markup import tag_local_name
from .models import CoverImage, ParsedBook, RawArchive, join_member_path, member_dir, normalize_member_path

XLINK_HREF = "{http://www.w3.org/1999/xlink}href"


def _attributes(node: LXML_ET._Element) -> dict[str, str]:
    # HTML attribute names are case-insensitive; namespaced keys keep their URI.
    attributes: dict[str, str] = {}
    for key, value in node.attrib.items():
        name = key if key.startswith("{") else key.lower()
        attributes.setdefault(name, value)
    return attributes


def image_reference(node: LXML_ET._Element) -> Optional[str]:
    local = tag_local_name(node.tag).lower()
    if local not in {"img", "image"}:
        return None
    attributes = _attributes(node)
    if local == "img":
        candidates = (attributes.get("src"),)
    else:
        candidates = (attributes.get(XLINK_HREF), attributes.get("href"), attributes.get("src"))
    for value in candidates:
        if value and value.strip():
            return value.strip()
    return None


def find_first_image(root: LXML_ET._Element) -> Optional[str]:
    # Depth-first, document order.
    for node in root.iter():
        reference = image_reference(node)
        if reference:
            return reference
    return None


def resolve_reference(chapter_path: str, reference: str) -> str:
    target = reference.split("#", 1)[0]
    if target.startswith("/"):
        return normalize_member_path(target)
    return normalize_member_path(join_member_path(member_dir(chapter_path), target))


def _probe_cover(archive: RawArchive, book: ParsedBook, diagnostics: Optional[Diagnostics]) -> Optional[CoverImage]:
    if not book.spine:
        return None
    item = book.manifest_item(book.spine[0].manifest_ref)
    if item is None:
        return None
    chapter_path = join_member_path(book.package_base_path, item.href)
    payload = archive.find(chapter_path)
    if payload is None:
        if diagnostics is not None:
            diagnostics.warn(f"cover probe: first chapter not found: {chapter_path}")
        return None

    root = parse_markup(payload.decode("utf-8", errors="replace"))
    reference = find_first_image(root)
    if not reference:
        if diagnostics is not None:
            diagnostics.info(f"cover probe: no image in {chapter_path}")
        return None

    image_path = resolve_reference(chapter_path, reference)
    image = archive.find(image_path)
    if image is None:
        if diagnostics is not None:
            diagnostics.warn(f"cover probe: image not found: {image_path}")
        return None
    return CoverImage(
        extension=PurePosixPath(reference.split("#", 1)[0]).suffix,
        raw_bytes=image,
        source_path=image_path,
    )


def resolve_cover(
    archive: RawArchive,
    book: ParsedBook,
    diagnostics: Optional[Diagnostics] = None,
) -> Optional[CoverImage]:
    """Find a cover by looking at the first image in the first spine document.

    Declared cover metadata (``cover_image_id``, ``cover-image`` items) is not consulted.
    Failures of any kind yield ``None``.
    """
    try:
        return _probe_cover(archive, book, diagnostics)
    except Exception as exc:
        if diagnostics is not None:
            diagnostics.warn(f"cover probe failed: {exc}")
        return None
