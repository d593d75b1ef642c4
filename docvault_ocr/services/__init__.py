"""
Серверные сервисы извлечения текста.

Модули:
    - pdf_processor: разбиение PDF на изображения
    - preprocessing: ориентация (OSD) и коррекция наклона
    - engine: одноразовый воркер Tesseract
    - native_text: текстовый слой PDF (pdfplumber)
    - arbitrator: многопроходный арбитраж по языкам
    - dispatcher: выбор стратегии по категории документа
    - storage: хранилище документов (локальное / HTTP)
    - job_registry: реестр задач с compare-and-set
    - job_runner: фоновое исполнение задач
    - job_service: отправка, статус, результат
"""

from docvault_ocr.services.arbitrator import MultiPassArbitrator
from docvault_ocr.services.dispatcher import ExtractionDispatcher
from docvault_ocr.services.engine import EngineConfig, TesseractEngine
from docvault_ocr.services.job_registry import JobRegistry
from docvault_ocr.services.job_runner import BackgroundJobRunner
from docvault_ocr.services.job_service import ExtractionJobService, build_service
from docvault_ocr.services.storage import HttpDocumentStorage, LocalDocumentStorage

__all__ = [
    "MultiPassArbitrator",
    "ExtractionDispatcher",
    "EngineConfig",
    "TesseractEngine",
    "JobRegistry",
    "BackgroundJobRunner",
    "ExtractionJobService",
    "build_service",
    "HttpDocumentStorage",
    "LocalDocumentStorage",
]
