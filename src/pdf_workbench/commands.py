"""
File-level commands behind the CLI.

Why this module exists:
- The core operations work on bytes in memory; these functions read inputs
  from disk, run one operation, write its outputs and a manifest.
- Every command follows the same shape: build a recorder, do the work,
  release loaded documents, and always write the manifest.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .compress import COMPRESSION_PRESETS, estimate_compressed_size, format_bytes
from .edit import PageEditSession
from .exports import (
    ExportResult,
    chunks_to_exports,
    compress_to_export,
    edits_to_export,
    extract_to_export,
    images_to_export,
    merge_to_export,
)
from .images import load_image_asset_from_path
from .layout import FitMode
from .loader import LoadedDocument, PasswordRequest, load_document
from .manifest import ManifestRecorder
from .sources import create_source_from_path
from .utils import (
    UserError,
    ensure_dir,
    ensure_dir_path,
    parse_page_numbers,
    parse_page_spec,
    parse_rotation_spec,
    validate_positive_int,
)


TOOL_NAME = "pdf-workbench"


def _new_recorder(
    command_string: str,
    options: Dict[str, object],
    inputs: Dict[str, object],
    out_dir: Path,
    manifest_path: Path,
    dry_run: bool,
) -> ManifestRecorder:
    return ManifestRecorder(
        tool_name=TOOL_NAME,
        tool_version=str(options.get("version", "0.0.0")),
        command=command_string,
        options=options,
        inputs=inputs,
        outputs={"out_dir": str(out_dir), "manifest": str(manifest_path)},
        dry_run=dry_run,
        verbosity=str(options.get("verbosity", "normal")),
    )


def _load(
    pdf_path: Path,
    password: Optional[str],
    request_password: Optional[PasswordRequest],
    recorder: ManifestRecorder,
    loaded: List[LoadedDocument],
) -> LoadedDocument:
    """Load one PDF and register it for release when the command ends."""

    source = create_source_from_path(pdf_path, password=password)
    document = load_document(source, request_password, recorder=recorder)
    loaded.append(document)
    recorder.add_action(
        action="load_pdf",
        status="loaded",
        input=str(pdf_path),
        page_count=document.page_count,
        size=document.size,
    )
    return document


def _write_export(
    result: ExportResult,
    out_dir: Path,
    overwrite: bool,
    dry_run: bool,
    recorder: ManifestRecorder,
) -> str:
    """Write one export to out_dir and return its status."""

    recorder.record_export(result)
    output_path = out_dir / result.download_name

    if output_path.exists() and not overwrite:
        recorder.log(f"Skipping existing file: {output_path}")
        recorder.add_action(action="write_output", status="skipped", output=str(output_path))
        return "skipped"

    if dry_run:
        recorder.log(f"[dry-run] Would write {format_bytes(result.size)} -> {output_path}")
        recorder.add_action(action="write_output", status="dry-run", output=str(output_path))
        return "dry-run"

    ensure_dir(out_dir, dry_run=False)
    output_path.write_bytes(result.data)
    recorder.log(f"Wrote {format_bytes(result.size)} -> {output_path}")
    recorder.add_action(
        action="write_output", status="written", output=str(output_path), size=result.size
    )
    return "written"


def _fail(recorder: ManifestRecorder, action: str, exc: Exception, context: str) -> str:
    """Log a failed command and return the message to report."""

    if isinstance(exc, UserError):
        error_message = str(exc)
    else:
        error_message = f"Failed to {context}: {exc}"
    recorder.log(error_message, level="error")
    recorder.add_action(action=action, status="error", error=error_message)
    return error_message


def _finish(
    recorder: ManifestRecorder,
    manifest_path: Path,
    summary: Dict[str, object],
    loaded: Sequence[LoadedDocument],
    error_message: Optional[str],
) -> None:
    for document in loaded:
        document.release()
    summary["status"] = "error" if error_message else "ok"
    if error_message is not None:
        summary["error"] = error_message
    recorder.write_manifest(manifest_path, summary)


def merge_pdfs(
    pdf_paths: Sequence[Path],
    out_dir: Path,
    overwrite: bool,
    dry_run: bool,
    manifest_path: Path,
    command_string: str,
    options: Dict[str, object],
    password: Optional[str] = None,
    request_password: Optional[PasswordRequest] = None,
) -> None:
    """Merge PDFs in the order given."""

    recorder = _new_recorder(
        command_string,
        options,
        {"pdfs": [str(path) for path in pdf_paths]},
        out_dir,
        manifest_path,
        dry_run,
    )
    loaded: List[LoadedDocument] = []
    error_message: Optional[str] = None
    summary: Dict[str, object] = {"inputs": len(pdf_paths), "page_count": 0}

    try:
        ensure_dir_path(out_dir, "Output directory")
        if len(pdf_paths) < 2:
            raise UserError("Need at least two PDFs to merge.")
        documents = [
            _load(path, password, request_password, recorder, loaded) for path in pdf_paths
        ]
        recorder.log(f"Merging {len(documents)} PDF(s).")
        result = merge_to_export(documents, recorder)
        summary["page_count"] = sum(document.page_count for document in documents)
        summary["output"] = _write_export(result, out_dir, overwrite, dry_run, recorder)
    except Exception as exc:
        error_message = _fail(recorder, "merge", exc, "merge PDFs")
        if isinstance(exc, UserError):
            raise
        raise UserError(error_message) from exc
    finally:
        _finish(recorder, manifest_path, summary, loaded, error_message)


def split_pdf(
    pdf_path: Path,
    out_dir: Path,
    pages_spec: Optional[str],
    pages_per_file: Optional[int],
    overwrite: bool,
    dry_run: bool,
    manifest_path: Path,
    command_string: str,
    options: Dict[str, object],
    password: Optional[str] = None,
    request_password: Optional[PasswordRequest] = None,
) -> None:
    """
    Split a PDF by page selection or into fixed-size parts.

    You can choose either a selection or chunking, not both.
    """

    recorder = _new_recorder(
        command_string, options, {"pdf": str(pdf_path)}, out_dir, manifest_path, dry_run
    )
    loaded: List[LoadedDocument] = []
    error_message: Optional[str] = None
    summary: Dict[str, object] = {"parts": 0, "page_count": 0}

    try:
        ensure_dir_path(out_dir, "Output directory")
        if pages_spec and pages_per_file:
            raise UserError("Use either --pages or --pages_per_file, not both.")
        if not pages_spec and pages_per_file is None:
            raise UserError("Either --pages or --pages_per_file is required.")

        document = _load(pdf_path, password, request_password, recorder, loaded)
        summary["page_count"] = document.page_count

        if pages_spec:
            recorder.inputs["pages"] = pages_spec
            results = [extract_to_export(document, parse_page_numbers(pages_spec), recorder)]
        else:
            chunk_size = validate_positive_int(pages_per_file or 0, "--pages_per_file")
            recorder.inputs["pages_per_file"] = chunk_size
            results = chunks_to_exports(document, chunk_size, recorder)

        recorder.log(
            f"Splitting {pdf_path} into {len(results)} part(s). "
            f"Total pages: {document.page_count}."
        )
        for result in results:
            _write_export(result, out_dir, overwrite, dry_run, recorder)
        summary["parts"] = len(results)
    except Exception as exc:
        error_message = _fail(recorder, "split", exc, f"split PDF {pdf_path}")
        if isinstance(exc, UserError):
            raise
        raise UserError(error_message) from exc
    finally:
        _finish(recorder, manifest_path, summary, loaded, error_message)


def edit_pdf(
    pdf_path: Path,
    out_dir: Path,
    order_spec: Optional[str],
    rotate_spec: Optional[str],
    delete_spec: Optional[str],
    overwrite: bool,
    dry_run: bool,
    manifest_path: Path,
    command_string: str,
    options: Dict[str, object],
    password: Optional[str] = None,
    request_password: Optional[PasswordRequest] = None,
) -> None:
    """
    Reorder, rotate and delete pages, then export a new PDF.

    Pages named in --order come first, in that order; the rest follow in
    their original order. Page numbers in --rotate and --delete refer to the
    original document.
    """

    recorder = _new_recorder(
        command_string, options, {"pdf": str(pdf_path)}, out_dir, manifest_path, dry_run
    )
    loaded: List[LoadedDocument] = []
    error_message: Optional[str] = None
    summary: Dict[str, object] = {"kept": 0, "deleted": 0, "rotated": 0}

    try:
        ensure_dir_path(out_dir, "Output directory")
        document = _load(pdf_path, password, request_password, recorder, loaded)
        session = PageEditSession(document)
        by_index = {page.original_index: page for page in session.pages}

        if order_spec:
            first = parse_page_spec(order_spec, document.page_count)
            placed = set(first)
            rest = [index for index in range(document.page_count) if index not in placed]
            session.replace([by_index[index] for index in first + rest])
            recorder.inputs["order"] = order_spec

        if rotate_spec:
            for index, degrees in parse_rotation_spec(rotate_spec, document.page_count).items():
                session.rotate(by_index[index].id, degrees)
            recorder.inputs["rotate"] = rotate_spec

        if delete_spec:
            for index in parse_page_spec(delete_spec, document.page_count):
                session.toggle_delete(by_index[index].id)
            recorder.inputs["delete"] = delete_spec

        kept, deleted, rotated = session.summary()
        summary.update({"kept": kept, "deleted": deleted, "rotated": rotated})
        recorder.log(
            f"Exporting {kept} page(s) ({deleted} deleted, {rotated} rotated) from {pdf_path}."
        )
        result = edits_to_export(document, session.pages, recorder)
        summary["output"] = _write_export(result, out_dir, overwrite, dry_run, recorder)
    except Exception as exc:
        error_message = _fail(recorder, "edit", exc, f"edit PDF {pdf_path}")
        if isinstance(exc, UserError):
            raise
        raise UserError(error_message) from exc
    finally:
        _finish(recorder, manifest_path, summary, loaded, error_message)


def images_to_pdf_file(
    image_paths: Sequence[Path],
    out_dir: Path,
    page_size: str,
    orientation: str,
    fit_mode: str,
    margin: float,
    overwrite: bool,
    dry_run: bool,
    manifest_path: Path,
    command_string: str,
    options: Dict[str, object],
) -> None:
    """Build one PDF with a page per image, in the order given."""

    recorder = _new_recorder(
        command_string,
        options,
        {"images": [str(path) for path in image_paths]},
        out_dir,
        manifest_path,
        dry_run,
    )
    error_message: Optional[str] = None
    summary: Dict[str, object] = {"images": len(image_paths), "converted": 0}

    try:
        ensure_dir_path(out_dir, "Output directory")
        if margin < 0:
            raise UserError("--margin must be >= 0.")
        assets = []
        for position, path in enumerate(image_paths, start=1):
            asset = load_image_asset_from_path(path, recorder)
            assets.append(asset)
            recorder.add_action(
                action="load_image",
                status="loaded",
                input=str(path),
                declared_type=asset.declared_type,
                embeddable_type=asset.embeddable_type,
                width=asset.width,
                height=asset.height,
            )
            recorder.log(f"Loaded image {path.name} ({position}/{len(image_paths)}).")
        summary["converted"] = sum(
            1 for asset in assets if asset.declared_type != asset.embeddable_type
        )

        result = images_to_export(
            assets,
            page_size=page_size,
            orientation=orientation,
            fit_mode=FitMode(fit_mode),
            margin=margin,
            recorder=recorder,
        )
        summary["output"] = _write_export(result, out_dir, overwrite, dry_run, recorder)
    except Exception as exc:
        error_message = _fail(recorder, "images", exc, "build PDF from images")
        if isinstance(exc, UserError):
            raise
        raise UserError(error_message) from exc
    finally:
        _finish(recorder, manifest_path, summary, [], error_message)


def compress_pdf(
    pdf_path: Path,
    out_dir: Path,
    preset_id: str,
    overwrite: bool,
    dry_run: bool,
    manifest_path: Path,
    command_string: str,
    options: Dict[str, object],
    password: Optional[str] = None,
    request_password: Optional[PasswordRequest] = None,
) -> None:
    """Rasterize and re-encode every page with a compression preset."""

    recorder = _new_recorder(
        command_string, options, {"pdf": str(pdf_path)}, out_dir, manifest_path, dry_run
    )
    loaded: List[LoadedDocument] = []
    error_message: Optional[str] = None
    summary: Dict[str, object] = {"preset": preset_id, "warnings": 0}

    try:
        ensure_dir_path(out_dir, "Output directory")
        document = _load(pdf_path, password, request_password, recorder, loaded)
        estimate = estimate_compressed_size(document.size, preset_id)
        summary["original_size"] = document.size
        summary["estimated_size"] = estimate
        recorder.log(
            f"Original size {format_bytes(document.size)}; "
            f"estimated after compression {format_bytes(estimate)}."
        )
        result = compress_to_export(document, preset_id, recorder=recorder)
        summary["compressed_size"] = result.size
        summary["warnings"] = len(result.warnings)
        summary["output"] = _write_export(result, out_dir, overwrite, dry_run, recorder)
    except Exception as exc:
        error_message = _fail(recorder, "compress", exc, f"compress PDF {pdf_path}")
        if isinstance(exc, UserError):
            raise
        raise UserError(error_message) from exc
    finally:
        _finish(recorder, manifest_path, summary, loaded, error_message)


def describe_pdf(
    pdf_path: Path,
    password: Optional[str] = None,
    request_password: Optional[PasswordRequest] = None,
) -> Dict[str, object]:
    """Page count, metadata and size estimates for one PDF."""

    source = create_source_from_path(pdf_path, password=password)
    with load_document(source, request_password) as document:
        return {
            "name": document.name,
            "size": document.size,
            "page_count": document.page_count,
            "version_tag": document.version_tag,
            "metadata": document.metadata.to_dict(),
            "estimates": {
                preset.id: estimate_compressed_size(document.size, preset.id)
                for preset in COMPRESSION_PRESETS
            },
        }


def estimate_sizes(original_size: int) -> List[Dict[str, object]]:
    """Per-preset size estimates, in preset order."""

    validate_positive_int(original_size, "--size")
    return [
        {
            "preset": preset.id,
            "label": preset.label,
            "estimated_size": estimate_compressed_size(original_size, preset.id),
        }
        for preset in COMPRESSION_PRESETS
    ]
