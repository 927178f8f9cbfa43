from .errors import ArchiveFormatError, ChapterParseError, IngestError, InvalidPackageError
from .ingest import ingest

__all__ = [
    "ArchiveFormatError",
    "ChapterParseError",
    "IngestError",
    "InvalidPackageError",
    "ingest",
]
