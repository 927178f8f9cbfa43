from __future__ import annotations

from typing import Optional

from lxml import etree as LXML_ET

from .diagnostics import Diagnostics
from .errors import ChapterParseError
from .manifest import manifest_index
from .markup import tag_local_name, xml_root_from_bytes
from .models import Chapter, ManifestItem, RawArchive, SpineItem, join_member_path

CHAPTER_MEDIA_TYPES = {"application/xhtml+xml", "text/html"}


def is_chapter_media_type(media_type: str) -> bool:
    return (media_type or "").strip().lower() in CHAPTER_MEDIA_TYPES


def parse_markup(html_text: str) -> LXML_ET._Element:
    try:
        return xml_root_from_bytes(html_text.encode("utf-8"), encoding="utf-8")
    except (LXML_ET.XMLSyntaxError, ValueError) as exc:
        raise ChapterParseError(str(exc)) from exc


def _find_first(root: LXML_ET._Element, local_name: str) -> Optional[LXML_ET._Element]:
    for node in root.iter():
        if tag_local_name(node.tag) == local_name:
            return node
    return None


def extract_title(root: LXML_ET._Element) -> Optional[str]:
    head = _find_first(root, "head")
    if head is None:
        return None
    # Unclosed void tags (<meta>, <link>) in HTML heads nest the title below them.
    title = _find_first(head, "title")
    if title is None:
        return None
    text = "".join(title.itertext()).strip()
    return text or None


def count_words(text: str) -> int:
    return len([word for word in " ".join(text.split()).split(" ") if word])


def body_word_count(root: LXML_ET._Element) -> int:
    # Body only; head text is never counted.
    body = _find_first(root, "body")
    scope = body if body is not None else root
    # Text nodes are joined with spaces: tags separate words.
    return count_words(" ".join(str(text) for text in scope.xpath(".//text()")))


def parse_chapter(html_text: str, chapter_number: int, spine_index: int, source_path: str) -> Chapter:
    content = html_text.strip()
    root = parse_markup(content)
    return Chapter(
        chapter_number=chapter_number,
        spine_index=spine_index,
        title=extract_title(root),
        source_path=source_path,
        content=content,
        word_count=body_word_count(root),
    )


def extract_chapters(
    spine: list[SpineItem],
    manifest: list[ManifestItem],
    package_base_path: str,
    archive: RawArchive,
    diagnostics: Optional[Diagnostics] = None,
) -> list[Chapter]:
    by_id = manifest_index(manifest)
    chapters: list[Chapter] = []
    for index, spine_item in enumerate(spine):
        item = by_id.get(spine_item.manifest_ref)
        if item is None:
            if diagnostics is not None:
                diagnostics.warn(f"spine entry {index} references unknown id {spine_item.manifest_ref!r}; skipped")
            continue
        path = join_member_path(package_base_path, item.href)
        payload = archive.find(path)
        if payload is None:
            if diagnostics is not None:
                diagnostics.warn(f"chapter file not found: {path}; skipped")
            continue
        html_text = payload.decode("utf-8", errors="replace")
        try:
            chapter = parse_chapter(html_text, index + 1, index, item.href)
        except ChapterParseError as exc:
            if diagnostics is not None:
                diagnostics.warn(f"chapter {path} could not be parsed: {exc}; skipped")
            continue
        if diagnostics is not None:
            diagnostics.info(f"chapter {chapter.chapter_number}: {chapter.title or 'Untitled'!r} ({chapter.word_count} words)")
        chapters.append(chapter)
    return chapters
