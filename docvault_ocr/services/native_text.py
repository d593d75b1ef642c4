"""
Извлечение встроенного текстового слоя из структурированных документов (PDF).

Быстрый путь без распознавания: pdfplumber читает текст страниц напрямую.
Пустой результат означает, что документ, скорее всего, является сканом.
"""

import io
import logging
import time

import pdfplumber
from pdfminer.pdfparser import PDFSyntaxError
from pdfplumber.utils.exceptions import PdfminerException

from docvault_ocr.errors import PermanentFailure
from docvault_ocr.schemas import NativeText

logger = logging.getLogger(__name__)


def extract_native_text(payload: bytes) -> NativeText:
    """
    Извлекает встроенный текст и количество страниц.

    Args:
        payload: байты PDF документа

    Returns:
        NativeText: текст страниц (через пустую строку) и количество страниц

    Raises:
        PermanentFailure: документ не является корректным PDF
    """
    start = time.perf_counter()

    try:
        with pdfplumber.open(io.BytesIO(payload)) as pdf:
            page_texts = []
            for page in pdf.pages:
                text = page.extract_text() or ""
                if text.strip():
                    page_texts.append(text)
            page_count = len(pdf.pages)
    except (PdfminerException, PDFSyntaxError) as e:
        raise PermanentFailure(f"Не удалось разобрать PDF: {e}") from e

    text = "\n\n".join(page_texts)
    elapsed_ms = int((time.perf_counter() - start) * 1000)
    logger.info(
        f"   Текстовый слой: {page_count} страниц, {len(text)} симв. за {elapsed_ms}ms"
    )

    return NativeText(text=text, page_count=max(page_count, 1))
