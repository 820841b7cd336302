"""
Load a Source into a LoadedDocument.

Why this module exists:
- Parsing can need a password, so loading is a small state machine rather
  than a single call: ATTEMPTING -> SUCCESS, or ATTEMPTING ->
  AWAITING_PASSWORD -> ATTEMPTING again until the caller gives up.
- The parsed handle is an owned resource. Whoever holds the LoadedDocument
  releases it; every failure path here releases it before raising.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
import re
from typing import Any, Callable, Dict, Iterator, Optional, Tuple
from uuid import uuid4

import fitz  # PyMuPDF

from .errors import PdfError, PdfErrorCode, map_parser_error, wrap_pdf_error
from .manifest import ManifestRecorder, log_to
from .sources import Source, create_source_from_path


PasswordRequest = Callable[[PdfErrorCode], Optional[str]]
StreamOpener = Callable[[bytearray], Any]


class LoaderState(str, Enum):
    ATTEMPTING = "attempting"
    AWAITING_PASSWORD = "awaiting-password"
    SUCCESS = "success"
    FAILED = "failed"


PERMISSION_FLAGS: Tuple[Tuple[str, int], ...] = (
    ("print", fitz.PDF_PERM_PRINT),
    ("modify", fitz.PDF_PERM_MODIFY),
    ("copy", fitz.PDF_PERM_COPY),
    ("annotate", fitz.PDF_PERM_ANNOTATE),
    ("form", fitz.PDF_PERM_FORM),
    ("accessibility", fitz.PDF_PERM_ACCESSIBILITY),
    ("assemble", fitz.PDF_PERM_ASSEMBLE),
    ("print-hq", fitz.PDF_PERM_PRINT_HQ),
)


@dataclass(frozen=True)
class PageSize:
    width_pt: float
    height_pt: float


@dataclass(frozen=True)
class DocumentMetadata:
    """Best-effort document info. Any field may be None."""

    title: Optional[str] = None
    author: Optional[str] = None
    subject: Optional[str] = None
    keywords: Optional[str] = None
    creator: Optional[str] = None
    producer: Optional[str] = None
    creation_date: Optional[str] = None
    modification_date: Optional[str] = None
    permissions: Optional[Tuple[str, ...]] = None
    page_size: Optional[PageSize] = None
    format: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "author": self.author,
            "subject": self.subject,
            "keywords": self.keywords,
            "creator": self.creator,
            "producer": self.producer,
            "creation_date": self.creation_date,
            "modification_date": self.modification_date,
            "permissions": list(self.permissions) if self.permissions is not None else None,
            "page_size": (
                {"width_pt": self.page_size.width_pt, "height_pt": self.page_size.height_pt}
                if self.page_size is not None
                else None
            ),
            "format": self.format,
        }


@dataclass
class LoadedDocument:
    """
    A parsed PDF plus the bytes it was parsed from.

    `handle` is owned by whoever holds this value; call release() (or use the
    document as a context manager) when it is discarded or replaced.
    """

    source_id: str
    id: str
    name: str
    size: int
    last_modified: Optional[int]
    page_count: int
    version_tag: str
    retained_bytes: bytes
    metadata: DocumentMetadata
    password: Optional[str] = field(default=None, repr=False)
    # The originating Source, carrying the accepted password when one was needed.
    source: Optional[Source] = field(default=None, repr=False)
    _handle: Any = field(default=None, repr=False)

    @property
    def released(self) -> bool:
        return self._handle is None

    @property
    def handle(self) -> Any:
        if self._handle is None:
            raise PdfError(PdfErrorCode.NOT_FOUND, f"Document {self.name} has been released.")
        return self._handle

    def release(self) -> None:
        """Close the parsed handle. Safe to call more than once."""

        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()

    def __enter__(self) -> "LoadedDocument":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    @contextmanager
    def open_working_copy(self) -> Iterator[Any]:
        """
        Re-parse the retained bytes into a secondary handle.

        Transformation operations copy pages out of this handle; it is closed
        on every exit path, independent of the primary handle.
        """

        try:
            working = fitz.open(stream=bytearray(self.retained_bytes), filetype="pdf")
        except Exception as exc:
            raise wrap_pdf_error(exc) from exc
        try:
            if working.needs_pass and not working.authenticate(self.password or ""):
                raise PdfError(PdfErrorCode.PASSWORD_INCORRECT)
            yield working
        finally:
            working.close()


def _open_pdf_stream(stream: bytearray) -> Any:
    return fitz.open(stream=stream, filetype="pdf")


def _attempt_open(
    open_stream: StreamOpener, source: Source, password: Optional[str]
) -> Any:
    """One parse attempt. The handle is closed here if the attempt fails."""

    # The parser may hold on to its input, so it always gets a private copy.
    handle = open_stream(bytearray(source.data))
    try:
        if handle.needs_pass:
            if not password:
                raise PdfError(PdfErrorCode.PASSWORD_REQUIRED)
            if not handle.authenticate(password):
                raise PdfError(PdfErrorCode.PASSWORD_INCORRECT)
        if handle.page_count <= 0:
            raise PdfError(PdfErrorCode.CORRUPT, "PDF has no pages.")
    except Exception:
        handle.close()
        raise
    return handle


_PDF_DATE = re.compile(
    r"^(?:D:)?(\d{4})(\d{2})?(\d{2})?(\d{2})?(\d{2})?(\d{2})?"
    r"(?:([Zz+\-])(?:(\d{2})'?(?:(\d{2})'?)?)?)?"
)


def normalize_pdf_date(value: Any) -> Optional[str]:
    """
    Convert a PDF date string (D:YYYYMMDDHHmmSSOHH'mm') to ISO-8601 UTC.

    Returns None for anything that does not parse.
    """

    if not value or not isinstance(value, str):
        return None
    match = _PDF_DATE.match(value.strip())
    if match is None:
        return None
    year, month, day, hour, minute, second, sign, tz_hour, tz_minute = match.groups()
    try:
        moment = datetime(
            int(year),
            int(month or 1),
            int(day or 1),
            int(hour or 0),
            int(minute or 0),
            int(second or 0),
            tzinfo=timezone.utc,
        )
    except ValueError:
        return None
    if sign in {"+", "-"}:
        offset = timedelta(hours=int(tz_hour or 0), minutes=int(tz_minute or 0))
        # Local time minus its offset gives UTC.
        moment = moment - offset if sign == "+" else moment + offset
    return moment.isoformat().replace("+00:00", "Z")


def _optional_string(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def _read_permissions(handle: Any) -> Tuple[str, ...]:
    bits = int(handle.permissions)
    return tuple(name for name, flag in PERMISSION_FLAGS if bits & flag)


def _read_page_size(handle: Any) -> PageSize:
    first_page = handle.load_page(0)
    rect = first_page.rect
    return PageSize(width_pt=float(rect.width), height_pt=float(rect.height))


def read_metadata(handle: Any, recorder: Optional[ManifestRecorder] = None) -> DocumentMetadata:
    """
    Read info dictionary, permissions and first page size.

    Each read is independent: a failure is logged and leaves that part None.
    """

    info: Dict[str, Any] = {}
    try:
        info = dict(handle.metadata or {})
    except Exception as exc:
        log_to(recorder, f"Failed to read PDF metadata: {exc}", level="warning")

    permissions: Optional[Tuple[str, ...]] = None
    try:
        permissions = _read_permissions(handle)
    except Exception as exc:
        log_to(recorder, f"Failed to read PDF permissions: {exc}", level="warning")

    page_size: Optional[PageSize] = None
    try:
        page_size = _read_page_size(handle)
    except Exception as exc:
        log_to(recorder, f"Failed to sample first page size: {exc}", level="warning")

    return DocumentMetadata(
        title=_optional_string(info.get("title")),
        author=_optional_string(info.get("author")),
        subject=_optional_string(info.get("subject")),
        keywords=_optional_string(info.get("keywords")),
        creator=_optional_string(info.get("creator")),
        producer=_optional_string(info.get("producer")),
        creation_date=normalize_pdf_date(info.get("creationDate")),
        modification_date=normalize_pdf_date(info.get("modDate")),
        permissions=permissions,
        page_size=page_size,
        format=_optional_string(info.get("format")),
    )


def load_document(
    source: Source,
    request_password: Optional[PasswordRequest] = None,
    *,
    recorder: Optional[ManifestRecorder] = None,
    opener: Optional[StreamOpener] = None,
) -> LoadedDocument:
    """
    Parse a Source, asking for passwords until it opens or the caller gives up.

    `request_password(reason)` is called with PASSWORD_REQUIRED or
    PASSWORD_INCORRECT. Returning None (or a blank string) cancels the load
    and the last password failure is raised.
    """

    open_stream = opener or _open_pdf_stream
    password = source.password
    state = LoaderState.ATTEMPTING
    # Replaced by the real parser failure before any branch reads it.
    failure = PdfError(PdfErrorCode.UNKNOWN)
    handle: Any = None

    while state not in {LoaderState.SUCCESS, LoaderState.FAILED}:
        if state is LoaderState.ATTEMPTING:
            log_to(recorder, f"Opening {source.name}", level="debug")
            try:
                handle = _attempt_open(open_stream, source, password)
            except Exception as exc:
                failure = map_parser_error(exc)
                state = (
                    LoaderState.AWAITING_PASSWORD
                    if failure.is_password_reason
                    else LoaderState.FAILED
                )
            else:
                state = LoaderState.SUCCESS
        elif state is LoaderState.AWAITING_PASSWORD:
            next_password = request_password(failure.code) if request_password else None
            if next_password and next_password.strip():
                password = next_password
                state = LoaderState.ATTEMPTING
            else:
                state = LoaderState.FAILED

    if state is LoaderState.FAILED:
        log_to(recorder, f"Could not open {source.name}: {failure}", level="error")
        raise failure

    try:
        metadata = read_metadata(handle, recorder)
        document = LoadedDocument(
            source_id=source.id,
            id=str(uuid4()),
            name=source.name,
            size=len(source.data),
            last_modified=source.last_modified,
            page_count=int(handle.page_count),
            version_tag=str(fitz.VersionBind),
            retained_bytes=source.data,
            metadata=metadata,
            password=password,
            source=source if password == source.password else source.with_password(password),
            _handle=handle,
        )
    except Exception as exc:
        handle.close()
        raise wrap_pdf_error(exc) from exc

    log_to(recorder, f"Loaded {source.name} ({document.page_count} page(s)).")
    return document


def load_document_from_path(
    path: Path,
    request_password: Optional[PasswordRequest] = None,
    *,
    password: Optional[str] = None,
    recorder: Optional[ManifestRecorder] = None,
) -> LoadedDocument:
    source = create_source_from_path(path, password=password)
    return load_document(source, request_password, recorder=recorder)
