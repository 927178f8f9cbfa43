from __future__ import annotations

from io import BytesIO
import zipfile
import zlib

from .errors import ArchiveFormatError
from .models import RawArchive

# Local file header; an empty archive starts with its end-of-central-directory record.
ZIP_SIGNATURE = b"PK\x03\x04"
EMPTY_ZIP_SIGNATURE = b"PK\x05\x06"


def _member_name(info: zipfile.ZipInfo) -> str:
    return (info.filename or "").replace("\\", "/")


def read_archive(raw: bytes) -> RawArchive:
    if not raw or len(raw) < len(ZIP_SIGNATURE):
        raise ArchiveFormatError("archive is too short to be a ZIP container")
    if not (raw.startswith(ZIP_SIGNATURE) or raw.startswith(EMPTY_ZIP_SIGNATURE)):
        raise ArchiveFormatError("archive does not start with a ZIP signature")

    entries: dict[str, bytes] = {}
    try:
        with zipfile.ZipFile(BytesIO(raw), "r") as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                name = _member_name(info)
                if not name or name in entries:
                    continue
                entries[name] = zf.read(info)
    except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError, RuntimeError) as exc:
        raise ArchiveFormatError(f"archive could not be decompressed: {exc}") from exc
    return RawArchive(entries)
