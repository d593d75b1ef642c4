"""
DocVault OCR — извлечение текста из документов хранилища.

Состав:
    - Серверная часть: реестр задач, фоновый исполнитель, диспетчер
      (текстовый слой PDF или многопроходный OCR), FastAPI эндпоинты
    - Клиентская часть: поллер статуса и гибридный контроллер
      с локальным распознаванием изображений при отказе сервера

Распознавание: Tesseract (pytesseract), растеризация PDF через pdf2image,
текстовый слой через pdfplumber.
"""

from docvault_ocr.config import settings
from docvault_ocr.schemas import (
    DocumentCategory,
    ExtractionJob,
    ExtractionSettings,
    JobStatus,
)

__all__ = [
    "settings",
    "DocumentCategory",
    "ExtractionJob",
    "ExtractionSettings",
    "JobStatus",
]
