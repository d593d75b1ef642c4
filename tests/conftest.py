"""
Общие фикстуры и фейки для тестов DocVault OCR.

Фейки заменяют Tesseract, хранилище и HTTP клиент: тесты не требуют
установленного бинарника tesseract и poppler.
"""

import io
import threading
from datetime import datetime
from typing import Optional

import pytest
from PIL import Image

from docvault_ocr.errors import EngineInitFailure, JobNotFound
from docvault_ocr.schemas import (
    ArbitrationResult,
    EngineResult,
    ExtractionOutcome,
    ExtractionResultView,
    JobHandle,
    JobStatus,
    JobStatusView,
)
from docvault_ocr.services.job_registry import JobRegistry


class FakeEngine:
    """Движок с заранее заданными результатами по языку."""

    def __init__(self, script: dict, calls: list):
        self.script = script
        self.calls = calls
        self.language: Optional[str] = None
        self.dpi: Optional[int] = None
        self.preprocess = False
        self.released = False

    def acquire(self):
        return self

    def configure(self, language, dpi=None, preprocess=False):
        outcome = self.script.get(language)
        if outcome is None or isinstance(outcome, Exception):
            raise outcome or EngineInitFailure(f"нет модели {language}")
        self.language = language
        self.dpi = dpi
        self.preprocess = preprocess

    def run(self, payload):
        self.calls.append((self.language, self.dpi, self.preprocess))
        text, confidence = self.script[self.language]
        return EngineResult(text=text, confidence=confidence, page_count=1)

    def release(self):
        self.released = True


def engine_factory(script: dict):
    """Фабрика фейковых движков и список вызовов run: (язык, dpi, предобработка)."""
    calls: list = []
    engines: list = []

    def factory():
        engine = FakeEngine(script, calls)
        engines.append(engine)
        return engine

    factory.calls = calls
    factory.engines = engines
    return factory


class FakeArbitrator:
    """Арбитр, возвращающий фиксированный результат."""

    def __init__(self, result: Optional[ArbitrationResult] = None, error: Optional[Exception] = None):
        self.result = result or ArbitrationResult(text="распознанный текст", confidence=88.0, language="eng", languages_tried=["eng"])
        self.error = error
        self.calls: list = []

    def arbitrate(self, payload, language, advanced_mode=False, quality_hint=75):
        self.calls.append((payload, language, advanced_mode, quality_hint))
        if self.error is not None:
            raise self.error
        return self.result


class FakeStorage:
    """Хранилище в памяти: document_id -> (bytes, category) или исключение."""

    def __init__(self, documents: Optional[dict] = None):
        self.documents = documents or {}

    def fetch_payload(self, document_id):
        value = self.documents[document_id]
        if isinstance(value, Exception):
            raise value
        return value


class FakeDispatcher:
    """Диспетчер с фиксированным результатом; может блокироваться до события."""

    def __init__(
        self,
        outcome: Optional[ExtractionOutcome] = None,
        error: Optional[Exception] = None,
        gate: Optional[threading.Event] = None,
    ):
        self.outcome = outcome or ExtractionOutcome(text="Текст документа", confidence=91.0, page_count=2, method="ocr")
        self.error = error
        self.gate = gate
        self.calls: list = []

    def dispatch(self, category, payload, settings):
        self.calls.append((category, payload, settings))
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return self.outcome


class FakeApiClient:
    """
    Клиент API со сценарием статусов.

    statuses — список JobStatus или исключений; последний элемент
    повторяется, когда список исчерпан. result_error — исключение
    запроса результата.
    """

    def __init__(
        self,
        statuses: list,
        error: Optional[str] = None,
        submit_errors: Optional[list] = None,
        result_error: Optional[Exception] = None,
    ):
        self.statuses = list(statuses)
        self.error = error
        self.result_error = result_error
        self.submit_errors = list(submit_errors or [])
        self.submissions: list = []
        self.status_calls = 0
        self.result_calls = 0

    def submit_extraction(self, document_id, settings=None):
        self.submissions.append(document_id)
        if self.submit_errors:
            raise self.submit_errors.pop(0)
        return JobHandle(
            job_id="job-1",
            document_id=document_id,
            status=JobStatus.PENDING,
            created_at=datetime.now(),
        )

    def get_status(self, document_id):
        self.status_calls += 1
        item = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(item, Exception):
            raise item
        if item is None:
            raise JobNotFound(document_id)
        return JobStatusView(document_id=document_id, status=item, error=self.error)

    def get_result(self, document_id):
        self.result_calls += 1
        if self.result_error is not None:
            raise self.result_error
        return ExtractionResultView(
            document_id=document_id,
            text="Готовый текст",
            confidence=93.0,
            page_count=1,
            processing_time_ms=120,
            processing_method="ocr",
        )


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry()


@pytest.fixture
def png_bytes() -> bytes:
    """Небольшое белое PNG изображение."""
    buffer = io.BytesIO()
    Image.new("RGB", (64, 32), color="white").save(buffer, format="PNG")
    return buffer.getvalue()
