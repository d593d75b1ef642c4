"""Тесты выбора стратегии извлечения по категории документа."""

import pytest

from conftest import FakeArbitrator
from docvault_ocr.errors import UnsupportedCategory
from docvault_ocr.schemas import (
    METHOD_NATIVE_TEXT,
    METHOD_OCR,
    METHOD_PLACEHOLDER,
    ArbitrationResult,
    DocumentCategory,
    ExtractionSettings,
    NativeText,
)
from docvault_ocr.services.dispatcher import ExtractionDispatcher


def test_native_text_is_accepted_without_recognition():
    arbitrator = FakeArbitrator()
    dispatcher = ExtractionDispatcher(
        arbitrator,
        native_extractor=lambda payload: NativeText(text="Договор поставки", page_count=3),
    )

    outcome = dispatcher.dispatch("structured-text", b"%PDF-1.7", ExtractionSettings())

    assert outcome.text == "Договор поставки"
    assert outcome.confidence == 95.0
    assert outcome.page_count == 3
    assert outcome.method == METHOD_NATIVE_TEXT
    assert arbitrator.calls == []


def test_empty_native_text_falls_through_to_recognition():
    arbitrator = FakeArbitrator()
    dispatcher = ExtractionDispatcher(
        arbitrator,
        native_extractor=lambda payload: NativeText(text="  \n ", page_count=4),
    )
    settings = ExtractionSettings(language="rus", quality_hint=90, advanced_mode=True)

    outcome = dispatcher.dispatch(DocumentCategory.STRUCTURED_TEXT, b"%PDF-scan", settings)

    assert arbitrator.calls == [(b"%PDF-scan", "rus", True, 90)]
    assert outcome.method == METHOD_OCR
    assert outcome.page_count == 4


def test_raster_image_goes_straight_to_recognition():
    arbitrator = FakeArbitrator()

    def native_extractor(payload):
        raise AssertionError("текстовый слой не должен читаться для изображений")

    dispatcher = ExtractionDispatcher(arbitrator, native_extractor=native_extractor)

    outcome = dispatcher.dispatch("raster-image", b"png", ExtractionSettings())

    assert outcome.text == "распознанный текст"
    assert outcome.confidence == 88.0
    assert len(arbitrator.calls) == 1


def test_placeholder_result_is_marked():
    arbitrator = FakeArbitrator(ArbitrationResult(text="[нет текста]", confidence=0.0, placeholder=True))
    dispatcher = ExtractionDispatcher(arbitrator)

    outcome = dispatcher.dispatch("raster-image", b"png", ExtractionSettings())

    assert outcome.method == METHOD_PLACEHOLDER
    assert outcome.confidence == 0.0


@pytest.mark.parametrize("category", ["spreadsheet", "document/docx", ""])
def test_unknown_category_is_unsupported(category):
    dispatcher = ExtractionDispatcher(FakeArbitrator())

    with pytest.raises(UnsupportedCategory):
        dispatcher.dispatch(category, b"data", ExtractionSettings())
