"""
Closed error taxonomy for document operations.

Every failure that leaves the core is a PdfError carrying one PdfErrorCode.
Parser and construction failures are mapped here so the rest of the code
never has to inspect PyMuPDF or Pillow exception types itself.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

import fitz  # PyMuPDF
from PIL import UnidentifiedImageError

from .utils import UserError


class PdfErrorCode(str, Enum):
    PASSWORD_REQUIRED = "password-required"
    PASSWORD_INCORRECT = "password-incorrect"
    CORRUPT = "corrupt"
    MISSING_DATA = "missing-data"
    NOT_FOUND = "not-found"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"


PASSWORD_REASONS = frozenset(
    {PdfErrorCode.PASSWORD_REQUIRED, PdfErrorCode.PASSWORD_INCORRECT}
)

DEFAULT_MESSAGES = {
    PdfErrorCode.PASSWORD_REQUIRED: (
        "This PDF is locked with a password. Unlock it first before uploading."
    ),
    PdfErrorCode.PASSWORD_INCORRECT: "The password provided for this PDF is incorrect.",
    PdfErrorCode.CORRUPT: "The file appears to be corrupted or is not a valid PDF.",
    PdfErrorCode.MISSING_DATA: (
        "We could not access the PDF data. Try downloading it locally before uploading."
    ),
    PdfErrorCode.NOT_FOUND: "We could not locate the PDF file to open it.",
    PdfErrorCode.UNSUPPORTED: "This PDF uses features we do not support yet.",
    PdfErrorCode.UNKNOWN: "We couldn't open that PDF. Please try another file.",
}


class PdfError(UserError):
    """A user-facing failure with a fixed category."""

    def __init__(self, code: PdfErrorCode, message: Optional[str] = None) -> None:
        super().__init__(message or DEFAULT_MESSAGES[code])
        self.code = code

    @property
    def is_password_reason(self) -> bool:
        return self.code in PASSWORD_REASONS


class UnsupportedImageType(PdfError):
    """Raised when an image cannot be embedded as PNG or JPEG."""

    def __init__(self, declared_type: str) -> None:
        super().__init__(
            PdfErrorCode.UNSUPPORTED,
            f"Unsupported image type: {declared_type or 'unknown'}.",
        )
        self.declared_type = declared_type


def map_parser_error(exc: BaseException) -> PdfError:
    """
    Translate a parsing-service failure into the closed taxonomy.

    Unrecognized failures become UNKNOWN with the original message preserved.
    """

    if isinstance(exc, PdfError):
        return exc
    if isinstance(exc, (fitz.FileDataError, UnidentifiedImageError)):
        return PdfError(PdfErrorCode.CORRUPT)
    if isinstance(exc, FileNotFoundError):
        return PdfError(PdfErrorCode.NOT_FOUND)
    if isinstance(exc, OSError):
        return PdfError(PdfErrorCode.MISSING_DATA)
    return PdfError(PdfErrorCode.UNKNOWN, str(exc) or None)


def wrap_pdf_error(
    exc: BaseException, fallback: PdfErrorCode = PdfErrorCode.UNKNOWN
) -> PdfError:
    """Keep PdfError as-is, otherwise wrap under the fallback code."""

    if isinstance(exc, PdfError):
        return exc
    return PdfError(fallback, str(exc) or None)


def friendly_message(reason: object) -> str:
    """Message shown to the user for any failure."""

    if isinstance(reason, PdfErrorCode):
        return DEFAULT_MESSAGES[reason]
    if isinstance(reason, PdfError):
        return str(reason)
    if isinstance(reason, Exception) and str(reason):
        return str(reason)
    return DEFAULT_MESSAGES[PdfErrorCode.UNKNOWN]
