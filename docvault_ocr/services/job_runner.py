"""
Фоновый исполнитель задач извлечения.

Задача выполняется вне запроса отправки:
    1. pending -> processing (если задача ждала свободного слота)
    2. Получение байтов и категории из хранилища
    3. Диспетчер: текстовый слой или многопроходный OCR
    4. Запись completed с временем обработки, либо failed/errored
       с отображаемым текстом-заглушкой

Параллелизм ограничен ThreadPoolExecutor на max_workers потоков.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor

from docvault_ocr.errors import (
    ExtractionError,
    PayloadRetrievalFailure,
    UnsupportedCategory,
)
from docvault_ocr.schemas import ExtractionJob, JobStatus
from docvault_ocr.services.dispatcher import ExtractionDispatcher
from docvault_ocr.services.job_registry import JobRegistry

logger = logging.getLogger(__name__)

FAILED_PLACEHOLDER = (
    "Не удалось распознать текст документа. Повторите попытку "
    "или включите расширенный режим."
)


class BackgroundJobRunner:
    """
    Исполнитель задач на пуле потоков.

    Attributes:
        registry: реестр задач (единственный получатель результатов)
        storage: хранилище документов с методом fetch_payload
        dispatcher: диспетчер извлечения
        max_workers: максимум одновременно выполняемых задач
    """

    def __init__(
        self,
        registry: JobRegistry,
        storage,
        dispatcher: ExtractionDispatcher,
        max_workers: int = 4,
    ):
        self.registry = registry
        self.storage = storage
        self.dispatcher = dispatcher
        self.max_workers = max(1, max_workers)
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="docvault-ocr",
        )
        self._active = 0
        self._lock = threading.Lock()

    def has_capacity(self) -> bool:
        """True если есть свободный поток для немедленного старта."""
        with self._lock:
            return self._active < self.max_workers

    def submit(self, job: ExtractionJob) -> Future:
        """Передаёт задачу в пул и сразу возвращает Future."""
        with self._lock:
            self._active += 1
        try:
            future = self._executor.submit(self._execute, job)
        except RuntimeError:
            self._release_slot(None)
            raise
        future.add_done_callback(self._release_slot)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _release_slot(self, _future: Future) -> None:
        with self._lock:
            self._active -= 1

    def _execute(self, job: ExtractionJob) -> ExtractionJob:
        start = time.perf_counter()
        document_id = job.document_id

        if job.status == JobStatus.PENDING:
            job = job.model_copy(update={"status": JobStatus.PROCESSING})
            self.registry.write(job)

        logger.info(f"Старт задачи: document_id={document_id}, job_id={job.job_id}")

        try:
            # 1. Байты и категория из хранилища
            payload, category = self._fetch(document_id)

            # 2. Извлечение текста
            outcome = self.dispatcher.dispatch(category, payload, job.settings)
        except (PayloadRetrievalFailure, UnsupportedCategory) as e:
            logger.error(f"Задача {document_id} -> errored: {e}")
            return self._finish_with_error(job, JobStatus.ERRORED, str(e), start)
        except ExtractionError as e:
            logger.error(f"Задача {document_id} -> failed: {e}")
            return self._finish_with_error(job, JobStatus.FAILED, str(e), start)
        except Exception as e:
            logger.exception(f"Непредвиденная ошибка задачи {document_id}: {e}")
            return self._finish_with_error(job, JobStatus.ERRORED, str(e), start)

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        completed = job.model_copy(
            update={
                "status": JobStatus.COMPLETED,
                "extracted_text": outcome.text,
                "confidence": max(0.0, min(100.0, outcome.confidence)),
                "page_count": max(1, outcome.page_count),
                "processing_time_ms": elapsed_ms,
                "processing_method": outcome.method,
                "error_message": None,
            }
        )
        self.registry.write(completed)

        logger.info(
            f"Задача {document_id} завершена за {elapsed_ms}ms: "
            f"{outcome.method}, уверенность {outcome.confidence:.0f}%, "
            f"{completed.page_count} стр."
        )
        return completed

    def _fetch(self, document_id: str) -> tuple[bytes, str]:
        try:
            return self.storage.fetch_payload(document_id)
        except PayloadRetrievalFailure:
            raise
        except Exception as e:
            raise PayloadRetrievalFailure(
                f"Ошибка хранилища для документа {document_id}: {e}"
            ) from e

    def _finish_with_error(
        self,
        job: ExtractionJob,
        status: JobStatus,
        message: str,
        start: float,
    ) -> ExtractionJob:
        finished = job.model_copy(
            update={
                "status": status,
                "extracted_text": FAILED_PLACEHOLDER,
                "confidence": 0.0,
                "processing_time_ms": int((time.perf_counter() - start) * 1000),
                "error_message": message,
            }
        )
        self.registry.write(finished)
        return finished
