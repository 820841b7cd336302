"""
Loader tests: password retry flow, error mapping and handle ownership.
"""

from __future__ import annotations

import unittest

from helpers_pdf import make_pdf_bytes, page_width

from pdf_workbench.errors import PdfError, PdfErrorCode
from helpers_cli import workspace_temp_dir

from pdf_workbench.loader import (
    load_document,
    load_document_from_path,
    normalize_pdf_date,
    read_metadata,
)
from pdf_workbench.manifest import ManifestRecorder
from pdf_workbench.sources import create_source


class _FakeHandle:
    """Stand-in parser handle that counts close() calls."""

    def __init__(self, needs_pass: bool = False, page_count: int = 1) -> None:
        self.needs_pass = needs_pass
        self.page_count = page_count
        self.closed = 0

    def authenticate(self, password: str) -> int:
        return 0

    def close(self) -> None:
        self.closed += 1

    @property
    def metadata(self):
        raise RuntimeError("info dictionary unreadable")

    @property
    def permissions(self):
        raise RuntimeError("permissions unreadable")

    def load_page(self, index: int):
        raise RuntimeError("page tree unreadable")


def _quiet_recorder() -> ManifestRecorder:
    return ManifestRecorder(
        tool_name="pdf-workbench",
        tool_version="test",
        command="test",
        options={},
        inputs={},
        outputs={},
        dry_run=True,
        verbosity="quiet",
    )


class LoadDocumentTests(unittest.TestCase):
    def test_plain_pdf(self) -> None:
        source = create_source(make_pdf_bytes(3), "plain.pdf")
        with load_document(source) as document:
            self.assertEqual(document.page_count, 3)
            self.assertEqual(document.size, source.size)
            self.assertEqual(document.retained_bytes, source.data)
            self.assertIs(document.source, source)
            self.assertIsNotNone(document.metadata.page_size)
            self.assertEqual(round(document.metadata.page_size.width_pt), page_width(1))
        self.assertTrue(document.released)

    def test_password_required_then_accepted(self) -> None:
        source = create_source(make_pdf_bytes(2, user_password="secret"), "locked.pdf")
        reasons = []
        answers = iter(["wrong", "secret"])

        def request(reason: PdfErrorCode):
            reasons.append(reason)
            return next(answers)

        document = load_document(source, request)
        try:
            self.assertEqual(
                reasons, [PdfErrorCode.PASSWORD_REQUIRED, PdfErrorCode.PASSWORD_INCORRECT]
            )
            self.assertEqual(document.page_count, 2)
            self.assertEqual(document.password, "secret")
            self.assertEqual(document.source.password, "secret")
            self.assertEqual(document.source.id, source.id)
            self.assertIsNone(source.password)
            # Secondary handles authenticate with the accepted password.
            with document.open_working_copy() as working:
                self.assertEqual(working.page_count, 2)
        finally:
            document.release()

    def test_seeded_password(self) -> None:
        source = create_source(
            make_pdf_bytes(1, user_password="secret"), "locked.pdf", password="secret"
        )
        with load_document(source) as document:
            self.assertEqual(document.page_count, 1)

    def test_cancel_raises_last_password_failure(self) -> None:
        source = create_source(make_pdf_bytes(1, user_password="secret"), "locked.pdf")
        with self.assertRaises(PdfError) as ctx:
            load_document(source, lambda reason: None)
        self.assertEqual(ctx.exception.code, PdfErrorCode.PASSWORD_REQUIRED)

        answers = iter(["wrong", "   "])
        with self.assertRaises(PdfError) as ctx:
            load_document(source, lambda reason: next(answers))
        self.assertEqual(ctx.exception.code, PdfErrorCode.PASSWORD_INCORRECT)

    def test_without_callback_password_is_an_error(self) -> None:
        source = create_source(make_pdf_bytes(1, user_password="secret"), "locked.pdf")
        with self.assertRaises(PdfError) as ctx:
            load_document(source)
        self.assertEqual(ctx.exception.code, PdfErrorCode.PASSWORD_REQUIRED)

    def test_load_from_path(self) -> None:
        with workspace_temp_dir("loader") as tmpdir:
            path = tmpdir / "locked.pdf"
            path.write_bytes(make_pdf_bytes(2, user_password="secret"))
            with load_document_from_path(path, password="secret") as document:
                self.assertEqual(document.name, "locked.pdf")
                self.assertIsNotNone(document.last_modified)
            with self.assertRaises(PdfError) as ctx:
                load_document_from_path(tmpdir / "missing.pdf")
            self.assertEqual(ctx.exception.code, PdfErrorCode.NOT_FOUND)

    def test_corrupt_bytes(self) -> None:
        source = create_source(b"this is not a pdf at all", "broken.pdf")
        with self.assertRaises(PdfError) as ctx:
            load_document(source)
        self.assertEqual(ctx.exception.code, PdfErrorCode.CORRUPT)

    def test_failed_attempts_close_every_handle(self) -> None:
        handles = []

        def opener(stream: bytearray) -> _FakeHandle:
            handle = _FakeHandle(needs_pass=True)
            handles.append(handle)
            return handle

        answers = iter(["one", "two", None])
        source = create_source(b"%PDF-1.7", "fake.pdf")
        with self.assertRaises(PdfError) as ctx:
            load_document(source, lambda reason: next(answers), opener=opener)
        self.assertEqual(ctx.exception.code, PdfErrorCode.PASSWORD_INCORRECT)
        self.assertEqual(len(handles), 3)
        self.assertTrue(all(handle.closed == 1 for handle in handles))

    def test_parser_gets_private_copy(self) -> None:
        seen = []

        def opener(stream: bytearray) -> _FakeHandle:
            seen.append(stream)
            stream[:4] = b"XXXX"
            return _FakeHandle()

        source = create_source(b"%PDF-1.7 body", "fake.pdf")
        document = load_document(source, opener=opener, recorder=_quiet_recorder())
        self.assertEqual(source.data, b"%PDF-1.7 body")
        self.assertEqual(document.retained_bytes, b"%PDF-1.7 body")
        self.assertIsInstance(seen[0], bytearray)
        document.release()

    def test_release_is_idempotent(self) -> None:
        handle = _FakeHandle()
        document = load_document(
            create_source(b"%PDF-1.7", "fake.pdf"),
            opener=lambda stream: handle,
            recorder=_quiet_recorder(),
        )
        document.release()
        document.release()
        self.assertEqual(handle.closed, 1)
        with self.assertRaises(PdfError) as ctx:
            document.handle
        self.assertEqual(ctx.exception.code, PdfErrorCode.NOT_FOUND)


class MetadataTests(unittest.TestCase):
    def test_every_read_is_best_effort(self) -> None:
        recorder = _quiet_recorder()
        metadata = read_metadata(_FakeHandle(), recorder)
        self.assertIsNone(metadata.title)
        self.assertIsNone(metadata.permissions)
        self.assertIsNone(metadata.page_size)
        warnings = [entry for entry in recorder.logs if entry["level"] == "warning"]
        self.assertEqual(len(warnings), 3)

    def test_normalize_pdf_date(self) -> None:
        self.assertEqual(normalize_pdf_date("D:20240102030405Z"), "2024-01-02T03:04:05Z")
        self.assertEqual(
            normalize_pdf_date("D:20240102030405+02'00'"), "2024-01-02T01:04:05Z"
        )
        self.assertEqual(normalize_pdf_date("D:2024"), "2024-01-01T00:00:00Z")
        self.assertIsNone(normalize_pdf_date("yesterday"))
        self.assertIsNone(normalize_pdf_date(None))


if __name__ == "__main__":
    unittest.main()
