"""
Адаптер движка распознавания — одноразовый воркер Tesseract.

Жизненный цикл одного воркера:
    acquire -> configure(язык, DPI) -> run(payload) -> release

Воркер никогда не переиспользуется и не разделяется между задачами:
каждая попытка распознавания создаёт новый экземпляр. Поддерживается
как контекстный менеджер:

    with TesseractEngine(config) as engine:
        engine.configure("eng", dpi=300)
        result = engine.run(payload)

ОПТИМИЗИРОВАНО: один вызов image_to_data на страницу даёт и текст,
и уверенность (вместо image_to_string + image_to_data).
"""

import io
import logging
import time
from dataclasses import dataclass, field
from itertools import groupby
from operator import itemgetter
from typing import Optional

import pytesseract
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError
from PIL import Image, ImageSequence, UnidentifiedImageError

from docvault_ocr.config import Settings
from docvault_ocr.errors import EngineInitFailure
from docvault_ocr.schemas import EngineResult
from docvault_ocr.services.pdf_processor import is_pdf, split_pdf_to_images
from docvault_ocr.services.preprocessing import PreprocessOptions, preprocess_page

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    """
    Явная конфигурация движка (вместо глобальных настроек окружения).

    Attributes:
        tesseract_cmd: путь к бинарнику tesseract (None = из PATH)
        oem: OCR Engine Mode
        psm: Page Segmentation Mode
        render_dpi: DPI по умолчанию
        render_dpi_high: DPI для расширенного режима и высокого качества
        high_quality_threshold: quality_hint, начиная с которого берётся высокий DPI
        render_format: формат растеризации PDF
        render_thread_count: потоки pdftoppm
        preprocess: параметры OSD/deskew
    """

    tesseract_cmd: Optional[str] = None
    oem: int = 1
    psm: int = 3
    render_dpi: int = 300
    render_dpi_high: int = 400
    high_quality_threshold: int = 90
    render_format: str = "png"
    render_thread_count: int = 1
    preprocess: PreprocessOptions = field(default_factory=PreprocessOptions)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        return cls(
            tesseract_cmd=settings.tesseract_cmd,
            oem=settings.ocr_oem,
            psm=settings.ocr_psm,
            render_dpi=settings.render_dpi,
            render_dpi_high=settings.render_dpi_high,
            high_quality_threshold=settings.high_quality_threshold,
            render_format=settings.render_format,
            render_thread_count=settings.render_thread_count,
            preprocess=PreprocessOptions(
                osd_crop_percent=settings.osd_crop_percent,
                osd_resize_px=settings.osd_resize_px,
                osd_confidence_threshold=settings.osd_confidence_threshold,
                deskew_resize_px=settings.deskew_resize_px,
                deskew_num_peaks=settings.deskew_num_peaks,
                skew_threshold=settings.skew_threshold,
            ),
        )

    def resolve_dpi(self, quality_hint: int, advanced_mode: bool) -> int:
        """DPI для попытки: высокий в расширенном режиме или при высоком quality_hint."""
        if advanced_mode or quality_hint >= self.high_quality_threshold:
            return self.render_dpi_high
        return self.render_dpi


class TesseractEngine:
    """
    Одноразовый воркер распознавания на базе Tesseract.

    Повторный acquire после release запрещён: для новой попытки
    создаётся новый экземпляр.
    """

    def __init__(self, config: EngineConfig):
        self.config = config
        self._state = "new"
        self._language: Optional[str] = None
        self._dpi = config.render_dpi
        self._preprocess = False

    def __enter__(self) -> "TesseractEngine":
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def acquire(self) -> "TesseractEngine":
        """
        Проверяет доступность Tesseract.

        Raises:
            EngineInitFailure: tesseract не найден или не запускается
        """
        if self._state != "new":
            raise RuntimeError("TesseractEngine одноразовый: создайте новый экземпляр")

        if self.config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.config.tesseract_cmd

        try:
            version = pytesseract.get_tesseract_version()
        except (pytesseract.TesseractNotFoundError, OSError) as e:
            self._state = "released"
            raise EngineInitFailure(f"Tesseract недоступен: {e}") from e

        logger.debug(f"Tesseract {version} готов")
        self._state = "acquired"
        return self

    def configure(self, language: str, dpi: Optional[int] = None, preprocess: bool = False) -> None:
        """
        Задаёт язык, DPI и предобработку для единственного прогона.

        Args:
            language: языки в формате Tesseract ("eng", "rus+eng")
            dpi: разрешение (None = render_dpi из конфига)
            preprocess: выполнять ли OSD + deskew перед распознаванием

        Raises:
            EngineInitFailure: языковая модель не установлена
        """
        if self._state != "acquired":
            raise RuntimeError("configure() вызывается после acquire() и до run()")

        try:
            available = set(pytesseract.get_languages(config=""))
        except pytesseract.TesseractError as e:
            raise EngineInitFailure(f"Не удалось получить список языков Tesseract: {e}") from e

        missing = [lang for lang in language.split("+") if lang not in available]
        if missing:
            raise EngineInitFailure(f"Языковые модели не установлены: {', '.join(missing)}")

        self._language = language
        self._dpi = dpi or self.config.render_dpi
        self._preprocess = preprocess
        self._state = "configured"

    def run(self, payload: bytes) -> EngineResult:
        """
        Распознаёт текст в изображении или растеризованном PDF.

        Args:
            payload: байты изображения или PDF

        Returns:
            EngineResult: текст, средняя уверенность, количество страниц

        Raises:
            EngineInitFailure: содержимое не декодируется или Tesseract упал
        """
        if self._state != "configured":
            raise RuntimeError("run() вызывается один раз после configure()")
        self._state = "ran"

        start = time.perf_counter()
        pages = self._load_pages(payload)
        ocr_config = f"--oem {self.config.oem} --psm {self.config.psm} --dpi {self._dpi}"

        page_texts: list[str] = []
        confidences: list[float] = []

        for page_num, image in enumerate(pages, start=1):
            if self._preprocess:
                image = preprocess_page(image, self.config.preprocess)

            try:
                data = pytesseract.image_to_data(
                    image,
                    lang=self._language,
                    config=ocr_config,
                    output_type=pytesseract.Output.DICT,
                )
            except (pytesseract.TesseractError, RuntimeError) as e:
                raise EngineInitFailure(
                    f"Ошибка Tesseract на странице {page_num} ({self._language}): {e}"
                ) from e

            text = assemble_text_from_data(data)
            if text:
                page_texts.append(text)
            confidences.extend(word_confidences(data))

        avg_confidence = sum(confidences) / len(confidences) if confidences else 0.0
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        result = EngineResult(
            text="\n\n".join(page_texts),
            confidence=round(avg_confidence, 2),
            page_count=len(pages),
        )

        logger.info(
            f"   Проход {self._language}: {len(result.text)} симв., "
            f"уверенность {result.confidence:.0f}%, {elapsed_ms}ms"
        )
        return result

    def release(self) -> None:
        """Освобождает воркер. Повторное использование невозможно."""
        self._state = "released"
        self._language = None

    def _load_pages(self, payload: bytes) -> list[Image.Image]:
        if not payload:
            raise EngineInitFailure("Пустое содержимое документа")

        if is_pdf(payload):
            try:
                return split_pdf_to_images(
                    payload,
                    dpi=self._dpi,
                    fmt=self.config.render_format,
                    thread_count=self.config.render_thread_count,
                )
            except (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError, ValueError) as e:
                raise EngineInitFailure(f"Не удалось растеризовать PDF: {e}") from e

        try:
            image = Image.open(io.BytesIO(payload))
            # Многостраничный TIFF — каждый кадр отдельная страница
            frames = [frame.copy() for frame in ImageSequence.Iterator(image)]
        except (UnidentifiedImageError, OSError) as e:
            raise EngineInitFailure(f"Не удалось декодировать изображение: {e}") from e

        return [f if f.mode in ("RGB", "L") else f.convert("RGB") for f in frames]


def assemble_text_from_data(data: dict) -> str:
    """
    Текст страницы из словаря image_to_data.

    Слова группируются по ключу (block_num, par_num, line_num): слова
    одной строки через пробел, строки блока через \\n, блоки через
    пустую строку.
    """
    lines: dict[tuple[int, int, int], list[str]] = {}
    for word, block, par, line in zip(
        data["text"], data["block_num"], data["par_num"], data["line_num"]
    ):
        word = str(word).strip()
        if word:
            lines.setdefault((block, par, line), []).append(word)

    return "\n\n".join(
        "\n".join(" ".join(lines[key]) for key in block_keys)
        for _, block_keys in groupby(sorted(lines), key=itemgetter(0))
    )


def word_confidences(data: dict) -> list[float]:
    """Уверенность реальных слов (непустой текст, conf >= 0)."""
    confidences = []
    for text, conf in zip(data["text"], data["conf"]):
        if not str(text).strip():
            continue
        try:
            value = float(conf)
        except (TypeError, ValueError):
            continue
        if value >= 0:
            confidences.append(value)
    return confidences
