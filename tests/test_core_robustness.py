"""
Robustness tests for naming, config layering, error mapping and manifests.
"""

from __future__ import annotations

import argparse
from datetime import datetime, timezone
import io
import json
import unittest

import fitz  # PyMuPDF

from helpers_cli import workspace_temp_dir

from pdf_workbench.cli import _effective_section
from pdf_workbench.config import DEFAULT_CONFIG, load_config
from pdf_workbench.errors import (
    DEFAULT_MESSAGES,
    PdfError,
    PdfErrorCode,
    friendly_message,
    map_parser_error,
)
from pdf_workbench.exports import ActivityRecord, ExportResult
from pdf_workbench.manifest import ManifestRecorder
from pdf_workbench.sources import (
    build_download_name,
    build_download_name_from_sources,
    build_split_slice_name,
    create_source,
    sanitize_file_stem,
    timestamp_token,
)
from pdf_workbench.utils import UserError


FIXED_NOW = datetime(2024, 3, 5, 6, 7, 8, 901000, tzinfo=timezone.utc)


class NamingTests(unittest.TestCase):
    def test_sanitize_file_stem(self) -> None:
        self.assertEqual(sanitize_file_stem("Quarterly Report (final).PDF"), "quarterly-report-final")
        self.assertTrue(sanitize_file_stem("***.pdf", "merge").startswith("merge-"))

    def test_timestamp_token(self) -> None:
        self.assertEqual(timestamp_token(FIXED_NOW), "2024-03-05T06-07-08-901Z")

    def test_download_name(self) -> None:
        self.assertEqual(
            build_download_name("My File.pdf", "split-selection", now=FIXED_NOW),
            "my-file.split-selection.2024-03-05T06-07-08-901Z.pdf",
        )

    def test_download_name_from_sources(self) -> None:
        sources = [create_source(b"1", "Alpha.pdf"), create_source(b"2", "Beta.pdf")]
        name = build_download_name_from_sources(sources, "merge")
        self.assertTrue(name.startswith("alpha.merge."))
        self.assertTrue(build_download_name_from_sources([], "merge").startswith("document.merge."))

    def test_split_slice_name(self) -> None:
        self.assertEqual(build_split_slice_name("Book.pdf", 3, 4, 1), "book-part-2-3to4.pdf")
        self.assertEqual(build_split_slice_name("Book.pdf", 5, 5, 2), "book-part-3-5to5.pdf")

    def test_source_copies_bytes(self) -> None:
        raw = bytearray(b"%PDF-1.7")
        source = create_source(raw, "a.pdf")
        raw[:4] = b"XXXX"
        self.assertEqual(source.data, b"%PDF-1.7")
        self.assertEqual(source.size, 8)
        self.assertEqual(source.with_password("pw").password, "pw")
        self.assertIsNone(source.password)

    def test_unknown_origin(self) -> None:
        with self.assertRaises(PdfError):
            create_source(b"", "a.pdf", origin="carrier-pigeon")


class ErrorMappingTests(unittest.TestCase):
    def test_map_parser_error(self) -> None:
        self.assertEqual(map_parser_error(fitz.FileDataError("bad")).code, PdfErrorCode.CORRUPT)
        self.assertEqual(map_parser_error(FileNotFoundError()).code, PdfErrorCode.NOT_FOUND)
        self.assertEqual(map_parser_error(PermissionError()).code, PdfErrorCode.MISSING_DATA)
        unknown = map_parser_error(RuntimeError("boom"))
        self.assertEqual(unknown.code, PdfErrorCode.UNKNOWN)
        self.assertEqual(str(unknown), "boom")

    def test_pdf_error_is_user_error(self) -> None:
        error = PdfError(PdfErrorCode.PASSWORD_REQUIRED)
        self.assertIsInstance(error, UserError)
        self.assertTrue(error.is_password_reason)
        self.assertEqual(str(error), DEFAULT_MESSAGES[PdfErrorCode.PASSWORD_REQUIRED])

    def test_friendly_message(self) -> None:
        self.assertEqual(
            friendly_message(PdfErrorCode.PASSWORD_INCORRECT),
            DEFAULT_MESSAGES[PdfErrorCode.PASSWORD_INCORRECT],
        )
        self.assertEqual(friendly_message(ValueError("custom")), "custom")
        self.assertEqual(friendly_message(None), DEFAULT_MESSAGES[PdfErrorCode.UNKNOWN])


class ConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        self.assertEqual(load_config(None), DEFAULT_CONFIG)

    def test_yaml_then_cli(self) -> None:
        with workspace_temp_dir("config") as tmpdir:
            path = tmpdir / "workbench.yaml"
            path.write_text("compress:\n  preset: smallest\nimages:\n  margin: 0\n", encoding="utf-8")

            effective = load_config(path)
            self.assertEqual(effective["compress"]["preset"], "smallest")
            self.assertEqual(effective["images"]["margin"], 0)
            self.assertEqual(effective["images"]["page_size"], "letter")

            args = argparse.Namespace(config=str(path), preset="high")
            section, config_path = _effective_section(args, "compress")
            self.assertEqual(section["preset"], "high")
            self.assertEqual(config_path, path)

            args = argparse.Namespace(config=str(path))
            section, _ = _effective_section(args, "compress")
            self.assertEqual(section["preset"], "smallest")

    def test_rejects_unknown_keys_and_values(self) -> None:
        with workspace_temp_dir("config") as tmpdir:
            path = tmpdir / "bad.yaml"
            path.write_text("compress:\n  quality: 10\n", encoding="utf-8")
            with self.assertRaises(UserError):
                load_config(path)
            path.write_text("images:\n  fit: stretch\n", encoding="utf-8")
            with self.assertRaises(UserError):
                load_config(path)
            path.write_text("split:\n  pages_per_file: 0\n", encoding="utf-8")
            with self.assertRaises(UserError):
                load_config(path)

    def test_missing_config(self) -> None:
        with workspace_temp_dir("config") as tmpdir:
            with self.assertRaises(UserError):
                load_config(tmpdir / "nope.yaml")


def _recorder(dry_run: bool = True, verbosity: str = "normal", stream=None) -> ManifestRecorder:
    return ManifestRecorder(
        tool_name="pdf-workbench",
        tool_version="0.0.0",
        command="pdf-workbench merge",
        options={"dry_run": dry_run},
        inputs={"pdfs": ["a.pdf", "b.pdf"]},
        outputs={"out_dir": "out"},
        dry_run=dry_run,
        verbosity=verbosity,
        console_stream=stream or io.StringIO(),
    )


class ManifestStructureTests(unittest.TestCase):
    def test_record_export(self) -> None:
        stream = io.StringIO()
        recorder = _recorder(stream=stream)
        result = ExportResult(
            data=b"%PDF",
            size=4,
            download_name="a.compress-balanced.2024.pdf",
            duration_ms=12,
            warnings=("Page 2 could not be compressed and was skipped.",),
            activity=ActivityRecord(tool="compression", operation="compress-balanced", source_count=1),
        )
        recorder.record_export(result)

        manifest = recorder.build_manifest({"status": "ok"})
        export = manifest["actions"][0]
        self.assertEqual(export["action"], "export")
        self.assertEqual(export["operation"], "compress-balanced")
        self.assertEqual(export["size"], 4)
        self.assertEqual(export["warnings"], list(result.warnings))
        self.assertEqual(manifest["action_counts"], {"created": 1})
        self.assertIn("Page 2 could not be compressed", stream.getvalue())

    def test_activity_tool_ids_are_closed(self) -> None:
        with self.assertRaises(ValueError):
            ActivityRecord(tool="printer", operation="print", source_count=1)

    def test_write_manifest_respects_dry_run(self) -> None:
        with workspace_temp_dir("manifest") as tmpdir:
            out_path = tmpdir / "manifest.json"
            _recorder(dry_run=True).write_manifest(out_path, {"ok": True})
            self.assertFalse(out_path.exists())

    def test_write_manifest_writes_json(self) -> None:
        with workspace_temp_dir("manifest") as tmpdir:
            out_path = tmpdir / "nested" / "manifest.json"
            recorder = _recorder(dry_run=False)
            recorder.add_action("write_output", "written", output="out/a.pdf")
            recorder.write_manifest(out_path, {"parts": 1})

            loaded = json.loads(out_path.read_text(encoding="utf-8"))
            self.assertEqual(loaded["summary"]["parts"], 1)
            self.assertEqual(loaded["action_counts"].get("written"), 1)


class ManifestVerbosityTests(unittest.TestCase):
    def test_quiet_suppresses_info_but_prints_error(self) -> None:
        stream = io.StringIO()
        recorder = _recorder(verbosity="quiet", stream=stream)
        recorder.log("hello-info")
        recorder.log("hello-error", level="error")
        output = stream.getvalue()
        self.assertNotIn("hello-info", output)
        self.assertIn("hello-error", output)
        self.assertEqual(len(recorder.logs), 2)

    def test_verbose_prints_debug_with_level_prefix(self) -> None:
        stream = io.StringIO()
        recorder = _recorder(verbosity="verbose", stream=stream)
        recorder.log("hello-debug", level="debug")
        self.assertIn("[debug] hello-debug", stream.getvalue())


if __name__ == "__main__":
    unittest.main()
