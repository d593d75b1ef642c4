"""Тесты извлечения текстового слоя PDF."""

import pytest

from docvault_ocr.errors import PermanentFailure
from docvault_ocr.services import native_text


class FakePage:
    def __init__(self, text):
        self.text = text

    def extract_text(self):
        return self.text


class FakePdf:
    def __init__(self, texts):
        self.pages = [FakePage(text) for text in texts]

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


def test_page_texts_are_joined(monkeypatch):
    monkeypatch.setattr(native_text.pdfplumber, "open", lambda stream: FakePdf(["Стр. 1", None, "Стр. 3"]))

    result = native_text.extract_native_text(b"%PDF-1.7")

    assert result.text == "Стр. 1\n\nСтр. 3"
    assert result.page_count == 3


def test_scanned_pdf_has_empty_text(monkeypatch):
    monkeypatch.setattr(native_text.pdfplumber, "open", lambda stream: FakePdf(["", "  "]))

    result = native_text.extract_native_text(b"%PDF-1.7")

    assert result.text == ""
    assert result.page_count == 2


def test_broken_pdf_is_permanent_failure():
    with pytest.raises(PermanentFailure):
        native_text.extract_native_text(b"this is not a pdf at all")
