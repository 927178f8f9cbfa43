from __future__ import annotations


class IngestError(Exception):
    """Base class for failures that abort an EPUB ingestion."""

    code = "INGEST_FAILED"


class ArchiveFormatError(IngestError):
    """The uploaded bytes are not a readable ZIP container."""

    code = "ARCHIVE_FORMAT"


class InvalidPackageError(IngestError):
    """The container descriptor, package document or spine cannot establish reading order."""

    code = "INVALID_PACKAGE"


class ChapterParseError(Exception):
    """A single chapter document could not be parsed; callers skip that chapter."""
