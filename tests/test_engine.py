"""
Тесты адаптера Tesseract: жизненный цикл одноразового воркера,
сборка текста и уверенности из image_to_data.
"""

import pytest
import pytesseract

from docvault_ocr.errors import EngineInitFailure
from docvault_ocr.services.engine import (
    EngineConfig,
    TesseractEngine,
    assemble_text_from_data,
    word_confidences,
)


def tesseract_data(rows):
    """rows: (block, par, line, word, conf)."""
    return {
        "block_num": [r[0] for r in rows],
        "par_num": [r[1] for r in rows],
        "line_num": [r[2] for r in rows],
        "text": [r[3] for r in rows],
        "conf": [r[4] for r in rows],
    }


SAMPLE = tesseract_data([
    (1, 1, 1, "Счёт", 91),
    (1, 1, 1, "№42", 87),
    (1, 1, 2, "от", 95),
    (1, 1, 2, "", -1),
    (2, 1, 1, "Итого:", 80),
    (2, 1, 1, "100", "77.5"),
])


@pytest.fixture
def fake_tesseract(monkeypatch):
    calls = []
    monkeypatch.setattr(pytesseract, "get_tesseract_version", lambda: "5.3.0")
    monkeypatch.setattr(pytesseract, "get_languages", lambda config="": ["eng", "rus", "osd"])

    def image_to_data(image, lang=None, config="", output_type=None):
        calls.append((lang, config))
        return SAMPLE

    monkeypatch.setattr(pytesseract, "image_to_data", image_to_data)
    return calls


def test_assemble_text_groups_lines_and_blocks():
    assert assemble_text_from_data(SAMPLE) == "Счёт №42\nот\n\nИтого: 100"


def test_assemble_text_orders_rows_and_keeps_paragraphs_in_block():
    data = tesseract_data([
        (3, 1, 1, "Подпись", 90),
        (1, 2, 1, "второй", 90),
        (1, 1, 1, "первый", 90),
        (1, 1, 1, "абзац", 90),
        (3, 1, 1, " ", 0),
    ])

    assert assemble_text_from_data(data) == "первый абзац\nвторой\n\nПодпись"


def test_word_confidences_skip_empty_and_negative():
    assert word_confidences(SAMPLE) == [91.0, 87.0, 95.0, 80.0, 77.5]


@pytest.mark.parametrize(
    "quality_hint, advanced, expected",
    [(75, False, 300), (90, False, 400), (10, True, 400)],
)
def test_resolve_dpi(quality_hint, advanced, expected):
    assert EngineConfig().resolve_dpi(quality_hint, advanced) == expected


def test_engine_runs_once_on_image(fake_tesseract, png_bytes):
    with TesseractEngine(EngineConfig(oem=1, psm=3)) as engine:
        engine.configure("rus+eng", dpi=400)
        result = engine.run(png_bytes)

    assert result.text == "Счёт №42\nот\n\nИтого: 100"
    assert result.confidence == pytest.approx(86.1)
    assert result.page_count == 1
    assert fake_tesseract == [("rus+eng", "--oem 1 --psm 3 --dpi 400")]


def test_missing_language_fails_configuration(fake_tesseract):
    engine = TesseractEngine(EngineConfig()).acquire()

    with pytest.raises(EngineInitFailure):
        engine.configure("jpn")


def test_missing_binary_fails_acquire(monkeypatch):
    def not_found():
        raise pytesseract.TesseractNotFoundError()

    monkeypatch.setattr(pytesseract, "get_tesseract_version", not_found)

    with pytest.raises(EngineInitFailure):
        TesseractEngine(EngineConfig()).acquire()


def test_engine_is_single_use(fake_tesseract, png_bytes):
    engine = TesseractEngine(EngineConfig()).acquire()
    engine.configure("eng")
    engine.run(png_bytes)
    engine.release()

    with pytest.raises(RuntimeError):
        engine.acquire()
    with pytest.raises(RuntimeError):
        engine.run(png_bytes)


def test_undecodable_payload_is_init_failure(fake_tesseract):
    engine = TesseractEngine(EngineConfig()).acquire()
    engine.configure("eng")

    with pytest.raises(EngineInitFailure):
        engine.run(b"definitely not an image")
