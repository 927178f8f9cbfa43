from __future__ import annotations

from typing import Optional

from .archive import read_archive
from .assets import classify_assets
from .chapters import extract_chapters
from .cover import resolve_cover
from .diagnostics import Diagnostics, LoggerDiagnostics
from .manifest import resolve_package
from .models import IngestionResult, book_record
from .package import locate_container, parse_package


def ingest(raw: bytes, diagnostics: Optional[Diagnostics] = None) -> IngestionResult:
    """Turn uploaded EPUB bytes into a book record, chapters, assets and a cover.

    Raises ``ArchiveFormatError`` or ``InvalidPackageError`` when no coherent
    book can be produced. Missing or broken chapters, assets and covers are
    skipped and reported to ``diagnostics`` instead.
    """
    if diagnostics is None:
        diagnostics = LoggerDiagnostics()

    archive = read_archive(raw)
    diagnostics.info(f"archive holds {len(archive)} files")
    descriptor = locate_container(archive)
    document = parse_package(archive, descriptor.package_path)
    parsed_book = resolve_package(document, descriptor, diagnostics)

    chapters = extract_chapters(
        parsed_book.spine,
        parsed_book.manifest,
        parsed_book.package_base_path,
        archive,
        diagnostics,
    )
    assets = classify_assets(parsed_book.manifest, parsed_book.package_base_path, archive, diagnostics)
    cover_image = resolve_cover(archive, parsed_book, diagnostics)

    diagnostics.info(
        f"ingested {parsed_book.metadata.title!r}: {len(chapters)}/{len(parsed_book.spine)} chapters, "
        f"{len(assets)} assets, cover {'found' if cover_image else 'missing'}"
    )
    return IngestionResult(
        parsed_book=parsed_book,
        book_record=book_record(parsed_book.metadata),
        chapters=chapters,
        assets=assets,
        cover_image=cover_image,
    )
