"""
Растеризация PDF для распознавания сканированных документов.

Использует pdf2image (pdftoppm) для рендеринга страниц в изображения.
Вызывается движком распознавания, когда в структурированном документе
нет текстового слоя.
"""

import logging
from typing import Optional

from pdf2image import convert_from_bytes
from PIL import Image

logger = logging.getLogger(__name__)

PDF_SIGNATURE = b"%PDF"


def is_pdf(payload: bytes) -> bool:
    """Проверяет PDF сигнатуру (%PDF) в начале содержимого."""
    return payload[:1024].lstrip().startswith(PDF_SIGNATURE)


def split_pdf_to_images(
    pdf_bytes: bytes,
    dpi: int,
    fmt: str = "png",
    thread_count: int = 1,
    poppler_path: Optional[str] = None,
) -> list[Image.Image]:
    """
    Разбивает PDF на изображения страниц.

    Использует pdftoppm через pdf2image — быстрый C++ рендеринг
    с многопоточностью.

    Args:
        pdf_bytes: содержимое PDF файла в байтах
        dpi: разрешение рендеринга
        fmt: формат промежуточных изображений
        thread_count: количество потоков pdftoppm
        poppler_path: путь к бинарникам poppler (None = из PATH)

    Returns:
        list[Image.Image]: изображения страниц в порядке следования

    Raises:
        ValueError: если PDF не содержит страниц
    """
    logger.info(f"Разбиение PDF: dpi={dpi}, threads={thread_count}")

    images = convert_from_bytes(
        pdf_bytes,
        dpi=dpi,
        fmt=fmt,
        thread_count=thread_count,
        poppler_path=poppler_path,
    )

    if not images:
        raise ValueError("PDF не содержит страниц")

    logger.info(f"Разбиение завершено: {len(images)} страниц")
    return images
