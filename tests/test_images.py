"""
PNG integrity, placement geometry and image-to-PDF assembly.
"""

from __future__ import annotations

import io
import random
import unittest
from unittest import mock

import fitz  # PyMuPDF
from PIL import Image, ImageFile

from helpers_pdf import make_image_bytes

from pdf_workbench import images as images_mod
from pdf_workbench.errors import PdfError, PdfErrorCode, UnsupportedImageType
from pdf_workbench.images import (
    EMBEDDABLE_JPEG,
    EMBEDDABLE_PNG,
    MAX_IMAGES,
    images_to_pdf,
    load_image_asset,
)
from pdf_workbench.layout import FitMode, PageBox, compute_image_placement, oriented_page_box
from pdf_workbench.png_integrity import PNG_SIGNATURE, has_png_signature, is_png_complete
from pdf_workbench.utils import UserError


# IEND is a zero-length chunk: 4 length bytes, 4 type bytes, 4 CRC bytes.
IEND_CHUNK_SIZE = 12


class PngIntegrityTests(unittest.TestCase):
    def test_complete_png(self) -> None:
        data = make_image_bytes("PNG")
        self.assertTrue(has_png_signature(data))
        self.assertTrue(is_png_complete(data))

    def test_truncated_png(self) -> None:
        data = make_image_bytes("PNG")
        self.assertFalse(is_png_complete(data[:-IEND_CHUNK_SIZE]))
        self.assertFalse(is_png_complete(data[:-1]))
        self.assertFalse(is_png_complete(data[: len(PNG_SIGNATURE) + 5]))

    def test_not_png(self) -> None:
        self.assertFalse(is_png_complete(make_image_bytes("JPEG")))
        self.assertFalse(has_png_signature(b""))


class PlacementTests(unittest.TestCase):
    def setUp(self) -> None:
        self.page = PageBox(width=612, height=792, margin=36)

    def test_fit_is_contained_and_centered(self) -> None:
        placement = compute_image_placement(1000, 500, self.page, FitMode.FIT)
        self.assertAlmostEqual(placement.width, 540)
        self.assertAlmostEqual(placement.height, 270)
        self.assertAlmostEqual(placement.x, 36)
        self.assertAlmostEqual(placement.y, (792 - 270) / 2)

    def test_fill_covers_content_box(self) -> None:
        placement = compute_image_placement(1000, 500, self.page, FitMode.FILL)
        self.assertAlmostEqual(placement.height, 720)
        self.assertGreater(placement.width, 540)
        self.assertLess(placement.x, 0)

    def test_center_never_upscales(self) -> None:
        for width, height in [(100, 50), (540, 720), (4000, 3000), (1, 1)]:
            placement = compute_image_placement(width, height, self.page, FitMode.CENTER)
            self.assertLessEqual(placement.width, width)
            self.assertLessEqual(placement.height, height)
            self.assertLessEqual(placement.width, 540 + 1e-9)
            self.assertLessEqual(placement.height, 720 + 1e-9)

    def test_zero_sized_image(self) -> None:
        self.assertTrue(compute_image_placement(0, 10, self.page).is_empty)

    def test_oversized_margin_is_clamped(self) -> None:
        placement = compute_image_placement(10, 10, PageBox(100, 200, margin=500))
        self.assertGreaterEqual(placement.width, 0)
        self.assertGreaterEqual(placement.height, 0)

    def test_oriented_page_box(self) -> None:
        box = oriented_page_box("a4", "landscape", 10)
        self.assertEqual((box.width, box.height, box.margin), (842, 595, 10))
        with self.assertRaises(UserError):
            oriented_page_box("tabloid")
        with self.assertRaises(UserError):
            oriented_page_box("letter", "sideways")


class LoadImageAssetTests(unittest.TestCase):
    def test_complete_png_kept(self) -> None:
        data = make_image_bytes("PNG")
        asset = load_image_asset(data, "a.png", "image/png")
        self.assertEqual(asset.embeddable_type, EMBEDDABLE_PNG)
        self.assertEqual(asset.data, data)
        self.assertEqual((asset.width, asset.height), (40, 20))

    def test_truncated_png_repaired_as_png(self) -> None:
        truncated = make_image_bytes("PNG")[:-IEND_CHUNK_SIZE]
        asset = load_image_asset(truncated, "cut.png", "image/png")
        self.assertEqual(asset.embeddable_type, EMBEDDABLE_PNG)
        self.assertNotEqual(asset.data, truncated)
        self.assertTrue(is_png_complete(asset.data))

    def test_png_cut_inside_image_data_is_repaired(self) -> None:
        rng = random.Random(7)
        noise = Image.frombytes("RGB", (200, 200), bytes(rng.getrandbits(8) for _ in range(200 * 200 * 3)))
        buffer = io.BytesIO()
        noise.save(buffer, format="PNG")
        data = buffer.getvalue()
        truncated = data[: len(data) * 2 // 3]

        asset = load_image_asset(truncated, "noise.png", "image/png")
        self.assertEqual(asset.embeddable_type, EMBEDDABLE_PNG)
        self.assertTrue(is_png_complete(asset.data))
        self.assertEqual((asset.width, asset.height), (200, 200))
        self.assertFalse(ImageFile.LOAD_TRUNCATED_IMAGES)

    def test_png_repair_falls_back_to_jpeg(self) -> None:
        real_encode = images_mod._encode_image

        def broken_png_encoder(image, image_format):
            if image_format == "PNG":
                return PNG_SIGNATURE + b"still truncated"
            return real_encode(image, image_format)

        truncated = make_image_bytes("PNG", mode="RGBA")[:-IEND_CHUNK_SIZE]
        with mock.patch.object(images_mod, "_encode_image", side_effect=broken_png_encoder):
            asset = load_image_asset(truncated, "cut.png", "image/png")
        self.assertEqual(asset.embeddable_type, EMBEDDABLE_JPEG)
        self.assertTrue(asset.data.startswith(b"\xff\xd8"))

    def test_jpeg_kept(self) -> None:
        data = make_image_bytes("JPEG")
        asset = load_image_asset(data, "a.jpg", "image/jpg")
        self.assertEqual(asset.embeddable_type, EMBEDDABLE_JPEG)
        self.assertEqual(asset.data, data)

    def test_other_image_types_become_jpeg(self) -> None:
        asset = load_image_asset(make_image_bytes("GIF"), "a.gif", "image/gif")
        self.assertEqual(asset.embeddable_type, EMBEDDABLE_JPEG)
        self.assertTrue(asset.data.startswith(b"\xff\xd8"))

    def test_unsupported_type(self) -> None:
        with self.assertRaises(UnsupportedImageType) as ctx:
            load_image_asset(b"hello", "notes.txt", "text/plain")
        self.assertEqual(ctx.exception.code, PdfErrorCode.UNSUPPORTED)

    def test_undecodable_image(self) -> None:
        with self.assertRaises(PdfError) as ctx:
            load_image_asset(b"not an image", "a.png", "image/png")
        self.assertEqual(ctx.exception.code, PdfErrorCode.CORRUPT)


class ImagesToPdfTests(unittest.TestCase):
    def test_one_page_per_image(self) -> None:
        assets = [
            load_image_asset(make_image_bytes("PNG"), "a.png", "image/png"),
            load_image_asset(make_image_bytes("JPEG", size=(20, 40)), "b.jpg", "image/jpeg"),
        ]
        data = images_to_pdf(assets, page_size="a4", orientation="landscape")
        with fitz.open(stream=data, filetype="pdf") as doc:
            self.assertEqual(doc.page_count, 2)
            self.assertEqual([round(doc[0].rect.width), round(doc[0].rect.height)], [842, 595])
            self.assertEqual(len(doc[1].get_images()), 1)

    def test_limits(self) -> None:
        with self.assertRaises(PdfError):
            images_to_pdf([])
        asset = load_image_asset(make_image_bytes("PNG"), "a.png", "image/png")
        with self.assertRaises(PdfError) as ctx:
            images_to_pdf([asset] * (MAX_IMAGES + 1))
        self.assertEqual(ctx.exception.code, PdfErrorCode.UNSUPPORTED)


if __name__ == "__main__":
    unittest.main()
