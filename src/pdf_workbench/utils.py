"""
Shared utility helpers.

This module keeps the "sharp edges" (validation and parsing) in one place so
the rest of the code can stay focused on document and image work.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List


class UserError(Exception):
    """Raised for user-facing problems that should show a clear message."""


def normalize_path(value: str) -> Path:
    """
    Convert user input to a Path.

    We do not resolve() here because we want to preserve relative paths in
    manifests and error messages.
    """

    return Path(value).expanduser()


def ensure_dir(path: Path, dry_run: bool) -> None:
    """
    Create a directory if needed, unless this is a dry-run.

    Why: dry-run should never touch the filesystem, but real runs should
    create output folders automatically.
    """

    if dry_run:
        return
    path.mkdir(parents=True, exist_ok=True)


def ensure_dir_path(path: Path, label: str) -> None:
    """Ensure a path is either a directory or does not exist yet."""

    if path.exists() and not path.is_dir():
        raise UserError(f"{label} is not a directory: {path}")


def validate_positive_int(value: int, label: str) -> int:
    """Common validation for options like --pages_per_file or --margin."""

    if value <= 0:
        raise UserError(f"{label} must be a positive integer.")
    return value


def _parse_token_range(token: str) -> tuple[int, int]:
    """Parse `5` or `2-4` into an inclusive (start, end) pair of page numbers."""

    if "-" in token:
        parts = token.split("-")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise UserError(f"Invalid range '{token}'. Use formats like 1-3 or 5.")
        if not (parts[0].isdigit() and parts[1].isdigit()):
            raise UserError(f"Invalid range '{token}'. Page numbers must be digits.")
        start = int(parts[0])
        end = int(parts[1])
    else:
        if not token.isdigit():
            raise UserError(f"Invalid page token '{token}'. Use formats like 1 or 2-4.")
        start = int(token)
        end = start

    if start < 1 or end < 1:
        raise UserError("Page numbers are 1-based and must be >= 1.")
    if start > end:
        raise UserError(f"Invalid range '{token}': start > end.")
    return start, end


def _split_tokens(spec: str, label: str) -> List[str]:
    compact = spec.strip().replace(" ", "")
    if not compact:
        raise UserError(f"{label} is empty.")
    tokens = compact.split(",")
    if any(token == "" for token in tokens):
        raise UserError(f"{label} contains an empty token (check commas).")
    return tokens


def parse_page_spec(spec: str, total_pages: int) -> List[int]:
    """
    Parse a page selection string into zero-based page indices.

    Examples:
    - "all"
    - "3,1,2"
    - "1-3,5,7-9"

    The order of the tokens is preserved, which is what page reordering needs.
    We keep this strict and explicit so mistakes are caught early.
    """

    if total_pages <= 0:
        raise UserError("PDF has no pages.")

    if spec.strip().lower() in {"all", "*"}:
        return list(range(total_pages))

    pages: List[int] = []
    seen = set()

    for token in _split_tokens(spec, "Page selection"):
        start, end = _parse_token_range(token)
        for page_number in range(start, end + 1):
            if page_number > total_pages:
                raise UserError(
                    f"Page {page_number} is out of range. PDF has {total_pages} pages."
                )
            if page_number in seen:
                raise UserError(f"Duplicate page {page_number} in selection.")
            seen.add(page_number)
            pages.append(page_number - 1)

    if not pages:
        raise UserError("Page selection produced no pages.")

    return pages


def parse_page_numbers(spec: str) -> List[int]:
    """
    Parse a selection like "4,2,2,99" or "1-3" into one-based page numbers.

    Unlike parse_page_spec this does not know the page count: range checks,
    duplicates and ordering are left to the split operation, which normalizes
    the selection itself.
    """

    numbers: List[int] = []
    for token in _split_tokens(spec, "Page selection"):
        start, end = _parse_token_range(token)
        numbers.extend(range(start, end + 1))
    return numbers


def parse_rotation_spec(spec: str, total_pages: int) -> Dict[int, int]:
    """
    Parse "1:90,3:-90" into {zero_based_index: degrees}.

    Degrees may be any integer; repeated pages accumulate like repeated
    rotate clicks would.
    """

    rotations: Dict[int, int] = {}
    for token in _split_tokens(spec, "Rotation spec"):
        page_part, sep, degree_part = token.partition(":")
        if not sep or not page_part.isdigit():
            raise UserError(f"Invalid rotation '{token}'. Use formats like 2:90 or 3:-90.")
        try:
            degrees = int(degree_part)
        except ValueError as exc:
            raise UserError(f"Invalid rotation degrees in '{token}'.") from exc
        page_number = int(page_part)
        if page_number < 1 or page_number > total_pages:
            raise UserError(
                f"Page {page_number} is out of range. PDF has {total_pages} pages."
            )
        index = page_number - 1
        rotations[index] = rotations.get(index, 0) + degrees
    return rotations
