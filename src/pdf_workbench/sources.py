"""
Source ingestion and download naming.

A Source is the immutable record of one uploaded file: its raw bytes plus
identifying metadata. Everything downstream reads from it and never writes
back, except for remembering which password finally unlocked it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
import re
from typing import Optional, Sequence
from uuid import uuid4

from .errors import PdfError, PdfErrorCode, map_parser_error


SOURCE_ORIGINS = {"upload", "drag-drop", "generated", "url", "file"}


@dataclass(frozen=True)
class Source:
    id: str
    origin: str
    name: str
    size: int
    last_modified: Optional[int]
    data: bytes
    password: Optional[str] = None

    def with_password(self, password: Optional[str]) -> "Source":
        """Return a copy that remembers the last accepted password."""

        return replace(self, password=password)


def create_source(
    data: bytes,
    name: str,
    *,
    origin: str = "upload",
    last_modified: Optional[int] = None,
    password: Optional[str] = None,
) -> Source:
    """Copy a raw buffer into a new Source record."""

    if origin not in SOURCE_ORIGINS:
        raise PdfError(PdfErrorCode.UNSUPPORTED, f"Unknown source origin: {origin}")
    frozen = bytes(data)
    return Source(
        id=str(uuid4()),
        origin=origin,
        name=name,
        size=len(frozen),
        last_modified=last_modified,
        data=frozen,
        password=password,
    )


def create_source_from_path(
    path: Path, *, origin: str = "file", password: Optional[str] = None
) -> Source:
    """Read a file from disk into a Source."""

    try:
        data = path.read_bytes()
        mtime_ms = int(path.stat().st_mtime * 1000)
    except OSError as exc:
        raise map_parser_error(exc) from exc
    return create_source(
        data, path.name, origin=origin, last_modified=mtime_ms, password=password
    )


# Naming helpers. Pure functions, consumed by the export builders.

_PDF_SUFFIX = re.compile(r"\.pdf$", re.IGNORECASE)
_UNSAFE_CHARS = re.compile(r"[^a-z0-9\-_]+", re.IGNORECASE)
_DASH_RUNS = re.compile(r"-+")


def timestamp_token(now: Optional[datetime] = None) -> str:
    """ISO timestamp that is safe to embed in a file name."""

    moment = now or datetime.now(timezone.utc)
    stamp = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z").replace(":", "-").replace(".", "-")


def _fallback_stem(prefix: str) -> str:
    return f"{prefix}-{datetime.now(timezone.utc).strftime('%Y-%m-%d')}"


def sanitize_file_stem(value: str, fallback_prefix: str = "document") -> str:
    """
    Reduce a file name to a lowercase, dash-separated stem.

    "Quarterly Report (final).pdf" -> "quarterly-report-final"
    """

    stem = _PDF_SUFFIX.sub("", value)
    stem = _UNSAFE_CHARS.sub("-", stem)
    stem = _DASH_RUNS.sub("-", stem).strip("-").lower()
    return stem or _fallback_stem(fallback_prefix)


def build_download_name(
    base_name: str,
    operation: str,
    extension: str = "pdf",
    now: Optional[datetime] = None,
) -> str:
    """Return `{stem}.{operation}.{timestamp}.{ext}`."""

    stem = sanitize_file_stem(base_name or "document", "document")
    op_stem = sanitize_file_stem(operation, "export")
    ext = extension.lstrip(".").lower() or "pdf"
    return f"{stem}.{op_stem}.{timestamp_token(now)}.{ext}"


def build_download_name_from_sources(
    sources: Sequence[Source], operation: str, extension: str = "pdf"
) -> str:
    first_name = sources[0].name if sources else "document.pdf"
    return build_download_name(first_name, operation, extension)


def build_split_slice_name(
    source_name: str, start_page: int, end_page: int, index: int
) -> str:
    """Name for one chunk of a fixed-size split, e.g. `book-part-2-3to4.pdf`."""

    stem = sanitize_file_stem(source_name, "split")
    safe_start = max(1, min(start_page, end_page))
    safe_end = max(safe_start, start_page, end_page)
    return f"{stem}-part-{index + 1}-{safe_start}to{safe_end}.pdf"
