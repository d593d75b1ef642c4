"""Тесты предобработки: ориентация (OSD) и коррекция наклона."""

import pytest
import pytesseract
from PIL import Image

from docvault_ocr.services import preprocessing
from docvault_ocr.services.pdf_processor import is_pdf
from docvault_ocr.services.preprocessing import (
    PreprocessOptions,
    apply_deskew,
    apply_rotation,
    detect_orientation,
    detect_skew,
    preprocess_page,
)


@pytest.fixture
def page():
    return Image.new("RGB", (200, 100), color="white")


def test_confident_osd_requests_rotation(monkeypatch, page):
    monkeypatch.setattr(
        pytesseract,
        "image_to_osd",
        lambda image, config="", output_type=None: {"rotate": 90, "orientation_conf": 5.2},
    )

    orientation = detect_orientation(page, PreprocessOptions())

    assert orientation.rotate == 90
    assert orientation.needs_rotation


def test_weak_osd_is_ignored(monkeypatch, page):
    monkeypatch.setattr(
        pytesseract,
        "image_to_osd",
        lambda image, config="", output_type=None: {"rotate": 180, "orientation_conf": 0.4},
    )

    assert not detect_orientation(page, PreprocessOptions()).needs_rotation


def test_osd_error_means_no_rotation(monkeypatch, page):
    def failing(image, config="", output_type=None):
        raise pytesseract.TesseractError(1, "Too few characters")

    monkeypatch.setattr(pytesseract, "image_to_osd", failing)

    orientation = detect_orientation(page, PreprocessOptions())

    assert orientation.rotate == 0
    assert not orientation.needs_rotation


@pytest.mark.parametrize("rotation, size", [(0, (200, 100)), (90, (100, 200)), (180, (200, 100)), (270, (100, 200))])
def test_apply_rotation(page, rotation, size):
    assert apply_rotation(page, rotation).size == size


def test_small_skew_is_not_corrected(page):
    assert apply_deskew(page, 0.3, threshold=0.5) is page
    assert apply_deskew(page, 3.0, threshold=0.5).size != page.size


def test_detect_skew_uses_threshold(monkeypatch, page):
    monkeypatch.setattr(preprocessing, "determine_skew", lambda array, num_peaks=20: 2.5)

    skew = detect_skew(page, PreprocessOptions())

    assert skew.angle == 2.5
    assert skew.needs_deskew


def test_preprocess_page_rotates_then_deskews(monkeypatch, page):
    monkeypatch.setattr(
        pytesseract,
        "image_to_osd",
        lambda image, config="", output_type=None: {"rotate": 90, "orientation_conf": 9.0},
    )
    monkeypatch.setattr(preprocessing, "determine_skew", lambda array, num_peaks=20: None)

    result = preprocess_page(page, PreprocessOptions())

    assert result.size == (100, 200)


@pytest.mark.parametrize(
    "payload, expected",
    [(b"%PDF-1.7\n...", True), (b"\n  %PDF-1.4", True), (b"\x89PNG\r\n", False), (b"", False)],
)
def test_is_pdf(payload, expected):
    assert is_pdf(payload) is expected
