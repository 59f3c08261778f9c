"""Tests for validation, page geometry, document writing and cleanup."""

import io
import os

import pytest
from PIL import Image
from pypdf import PdfReader

from picpdf.config import Settings
from picpdf.errors import (
    ConversionFailed,
    DocumentWriteFailed,
    NoFilesProvided,
    PayloadTooLarge,
    TooManyFiles,
    UnexpectedField,
    UnsupportedMediaType,
)
from picpdf.schemas.common import CleanupState, PageGeometry, UploadedImage
from picpdf.services.cleanup import CleanupCoordinator
from picpdf.services import document_streamer
from picpdf.services.document_streamer import write_document
from picpdf.services.page_synthesizer import fit_within, load_image, resolve_geometry
from picpdf.services.validation import IngestionValidator, normalize_content_type

from conftest import make_image, page_image_sizes

A4 = resolve_geometry("A4")


def _stored(store, name: str, data: bytes) -> UploadedImage:
    path = store.upload_dir / name
    path.write_bytes(data)
    return UploadedImage(
        original_filename=name,
        stored_filename=name,
        path=path,
        content_type="image/png",
        size_bytes=len(data),
    )


class TestIngestionValidator:
    validator = IngestionValidator(Settings())

    def test_accepts_jpeg_and_png(self):
        self.validator.check_content_type("image/jpeg")
        self.validator.check_content_type("image/png")
        self.validator.check_content_type("IMAGE/PNG; charset=binary")

    @pytest.mark.parametrize("content_type", ["image/gif", "application/pdf", "", None])
    def test_rejects_other_types(self, content_type):
        with pytest.raises(UnsupportedMediaType) as exc_info:
            self.validator.check_content_type(content_type)
        assert exc_info.value.message == "Only .jpg, .jpeg, .png files are allowed"

    def test_count_limit(self):
        self.validator.check_count(50)
        with pytest.raises(TooManyFiles) as exc_info:
            self.validator.check_count(51)
        assert exc_info.value.message == "Too many files. Max 50"

    def test_size_limit_names_10mb(self):
        self.validator.check_size(10 * 1024 * 1024)
        with pytest.raises(PayloadTooLarge) as exc_info:
            self.validator.check_size(10 * 1024 * 1024 + 1)
        assert exc_info.value.message == "File too large. Max 10MB per file"

    def test_field_name(self):
        self.validator.check_field("images")
        with pytest.raises(UnexpectedField):
            self.validator.check_field("photos")

    def test_empty_batch(self):
        with pytest.raises(NoFilesProvided) as exc_info:
            self.validator.check_not_empty([])
        assert exc_info.value.http_status == 400

    def test_normalize_content_type(self):
        assert normalize_content_type(" Image/JPEG ;q=1") == "image/jpeg"
        assert normalize_content_type(None) == ""


class TestGeometry:
    def test_a4_dimensions(self):
        assert A4.width == pytest.approx(595.2756, abs=1e-3)
        assert A4.height == pytest.approx(841.8898, abs=1e-3)

    def test_unknown_page_size(self):
        with pytest.raises(ValueError):
            resolve_geometry("A99")

    def test_matching_aspect_has_no_letterbox(self):
        placement = fit_within(A4.width * 2, A4.height * 2, A4)
        assert placement.x == pytest.approx(0)
        assert placement.y == pytest.approx(0)
        assert placement.width == pytest.approx(A4.width)
        assert placement.height == pytest.approx(A4.height)

    def test_wide_image_is_letterboxed_vertically(self):
        placement = fit_within(2000, 1000, A4)
        assert placement.x == pytest.approx(0)
        assert placement.width == pytest.approx(A4.width)
        assert placement.height == pytest.approx(A4.width / 2)
        # symmetric bands above and below
        assert placement.y == pytest.approx((A4.height - placement.height) / 2)
        assert placement.y + placement.height == pytest.approx(A4.height - placement.y)

    def test_tall_image_is_letterboxed_horizontally(self):
        placement = fit_within(100, 1000, A4)
        assert placement.y == pytest.approx(0)
        assert placement.height == pytest.approx(A4.height)
        assert placement.width == pytest.approx(A4.height / 10)
        assert placement.x == pytest.approx((A4.width - placement.width) / 2)

    def test_small_image_is_scaled_up(self):
        placement = fit_within(10, 10, A4)
        assert placement.width == pytest.approx(A4.width)
        assert placement.height == pytest.approx(A4.width)

    def test_aspect_ratio_is_preserved(self):
        placement = fit_within(1234, 567, A4)
        assert placement.width / placement.height == pytest.approx(1234 / 567)
        assert placement.width <= A4.width + 1e-9
        assert placement.height <= A4.height + 1e-9

    def test_invalid_dimensions(self):
        with pytest.raises(ValueError):
            fit_within(0, 100, A4)

    def test_custom_geometry(self):
        placement = fit_within(100, 100, PageGeometry(width=200, height=100))
        assert (placement.x, placement.y, placement.width, placement.height) == (50, 0, 100, 100)


class TestLoadImage:
    def test_decodes_png_and_jpeg(self, tmp_path):
        png = tmp_path / "a.png"
        png.write_bytes(make_image(30, 20, "PNG"))
        jpeg = tmp_path / "b.jpg"
        jpeg.write_bytes(make_image(16, 48, "JPEG"))

        assert load_image(png).size == (30, 20)
        assert load_image(jpeg).size == (16, 48)

    def test_garbage_raises_conversion_failed(self, tmp_path):
        bogus = tmp_path / "bogus.png"
        bogus.write_bytes(b"definitely not an image")
        with pytest.raises(ConversionFailed) as exc_info:
            load_image(bogus)
        assert exc_info.value.http_status == 500

    def test_truncated_png_raises_conversion_failed(self, tmp_path):
        noisy = io.BytesIO()
        Image.frombytes("RGB", (200, 200), os.urandom(200 * 200 * 3)).save(noisy, format="PNG")
        truncated = tmp_path / "cut.png"
        truncated.write_bytes(noisy.getvalue()[: len(noisy.getvalue()) // 2])
        with pytest.raises(ConversionFailed):
            load_image(truncated)


class TestWriteDocument:
    def test_one_page_per_image_in_order(self, store):
        sizes = [(40, 30), (10, 90), (64, 64)]
        images = [_stored(store, f"{i}.png", make_image(w, h)) for i, (w, h) in enumerate(sizes)]
        output = store.allocate_output_path()

        document = write_document(images, output, A4)

        assert document.page_count == 3
        assert document.size_bytes == output.stat().st_size
        pdf_bytes = output.read_bytes()
        assert page_image_sizes(pdf_bytes) == [[size] for size in sizes]
        for page in PdfReader(io.BytesIO(pdf_bytes)).pages:
            assert float(page.mediabox.width) == pytest.approx(A4.width, abs=0.01)
            assert float(page.mediabox.height) == pytest.approx(A4.height, abs=0.01)

    def test_undecodable_image_leaves_no_document(self, store):
        images = [
            _stored(store, "good.png", make_image(20, 20)),
            _stored(store, "bad.png", b"\x89PNG\r\n\x1a\n garbage"),
        ]
        output = store.allocate_output_path()

        with pytest.raises(ConversionFailed):
            write_document(images, output, A4)
        assert not output.exists()

    def test_page_count_mismatch_is_write_failure(self, store, monkeypatch):
        class ShortReader:
            def __init__(self, path):
                self.pages = []

        images = [_stored(store, "a.png", make_image(20, 20)), _stored(store, "b.png", make_image(30, 20))]
        output = store.allocate_output_path()
        monkeypatch.setattr(document_streamer, "PdfReader", ShortReader)

        with pytest.raises(DocumentWriteFailed) as exc_info:
            write_document(images, output, A4)
        assert exc_info.value.message == "Failed to generate PDF"
        assert exc_info.value.details["expected"] == 2
        assert exc_info.value.details["actual"] == 0


class TestCleanupCoordinator:
    def _files(self, store, count: int):
        paths = []
        for i in range(count):
            path = store.upload_dir / f"{i}.png"
            path.write_bytes(b"x")
            paths.append(path)
        return paths

    def test_success_removes_everything_once(self, store):
        coordinator = CleanupCoordinator(store, "req-1")
        paths = [coordinator.track(p) for p in self._files(store, 3)]

        coordinator.finish(success=True)

        assert coordinator.state == CleanupState.CLEANED
        assert all(not p.exists() for p in paths)
        assert coordinator.cleanup() == 0

    def test_exception_in_block_cleans_up(self, store):
        paths = self._files(store, 2)
        with pytest.raises(RuntimeError):
            with CleanupCoordinator(store, "req-2") as coordinator:
                for path in paths:
                    coordinator.track(path)
                raise RuntimeError("boom")

        assert coordinator.state == CleanupState.CLEANED
        assert all(not p.exists() for p in paths)

    def test_handoff_defers_cleanup(self, store):
        paths = self._files(store, 2)
        with CleanupCoordinator(store, "req-3") as coordinator:
            for path in paths:
                coordinator.track(path)
            coordinator.handoff()

        assert coordinator.state == CleanupState.PENDING
        assert all(p.exists() for p in paths)

        coordinator.finish(success=False)
        assert all(not p.exists() for p in paths)

    def test_block_without_handoff_cleans_up(self, store):
        paths = self._files(store, 1)
        with CleanupCoordinator(store, "req-4") as coordinator:
            coordinator.track(paths[0])
        assert not paths[0].exists()

    def test_first_outcome_wins(self, store):
        coordinator = CleanupCoordinator(store, "req-5")
        coordinator.fail()
        coordinator.succeed()
        assert coordinator.state == CleanupState.FAILURE

    def test_cleanup_does_not_touch_other_requests(self, store):
        mine, theirs = self._files(store, 2)
        coordinator = CleanupCoordinator(store, "req-6")
        coordinator.track(mine)

        coordinator.cleanup()
        coordinator.cleanup()

        assert not mine.exists()
        assert theirs.exists()

    def test_missing_file_does_not_raise(self, store):
        coordinator = CleanupCoordinator(store, "req-7")
        coordinator.track(store.generated_dir / "never-written.pdf")
        assert coordinator.cleanup() == 0
        assert coordinator.state == CleanupState.CLEANED

    def test_tracking_after_cleanup_releases_immediately(self, store):
        late = self._files(store, 1)[0]
        coordinator = CleanupCoordinator(store, "req-8")
        coordinator.cleanup()
        coordinator.track(late)
        assert not late.exists()
