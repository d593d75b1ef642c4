"""
Фасад отправки, статуса и результата задач извлечения.

Отправка никогда не ждёт извлечения: задача записывается в реестр
и передаётся фоновому исполнителю, ответ возвращается сразу.
"""

import logging
from typing import Optional

from docvault_ocr.config import Settings
from docvault_ocr.errors import ResultNotReady
from docvault_ocr.schemas import (
    ExtractionJob,
    ExtractionResultView,
    ExtractionSettings,
    JobHandle,
    JobStatus,
    JobStatusView,
)
from docvault_ocr.services.arbitrator import MultiPassArbitrator
from docvault_ocr.services.dispatcher import ExtractionDispatcher
from docvault_ocr.services.job_registry import JobRegistry
from docvault_ocr.services.job_runner import FAILED_PLACEHOLDER, BackgroundJobRunner
from docvault_ocr.services.storage import build_storage

logger = logging.getLogger(__name__)

# Грубая оценка прогресса и описание этапа для поллера
_STATUS_PROGRESS = {
    JobStatus.PENDING: (0.0, "Задача ожидает свободного исполнителя"),
    JobStatus.PROCESSING: (0.5, "Идёт извлечение текста"),
    JobStatus.COMPLETED: (1.0, "Извлечение текста завершено"),
    JobStatus.FAILED: (1.0, "Извлечение текста не удалось"),
    JobStatus.ERRORED: (1.0, "Ошибка обработки документа"),
}


class ExtractionJobService:
    """Отправка задач, опрос статуса и чтение результата."""

    def __init__(self, registry: JobRegistry, runner: BackgroundJobRunner):
        self.registry = registry
        self.runner = runner

    def submit_extraction(
        self,
        document_id: str,
        settings: Optional[ExtractionSettings] = None,
    ) -> JobHandle:
        """
        Отправляет документ на извлечение текста.

        Идемпотентна для незавершённых задач: если для документа уже есть
        pending/processing задача, возвращается она, новая не создаётся.

        Args:
            document_id: идентификатор документа
            settings: настройки извлечения (по умолчанию — стандартные)

        Returns:
            JobHandle: описание задачи, deduplicated=True для существующей
        """
        settings = settings or ExtractionSettings()
        initial = JobStatus.PROCESSING if self.runner.has_capacity() else JobStatus.PENDING

        job, created = self.registry.create_or_get(document_id, settings, status=initial)

        if created:
            try:
                self.runner.submit(job)
            except RuntimeError as e:
                # Исполнитель остановлен: запись переводится в терминальный статус
                logger.error(f"Не удалось передать задачу {document_id} исполнителю: {e}")
                self.registry.write(
                    job.model_copy(
                        update={
                            "status": JobStatus.ERRORED,
                            "extracted_text": FAILED_PLACEHOLDER,
                            "error_message": f"Задача не передана исполнителю: {e}",
                        }
                    )
                )
                raise
        else:
            logger.info(
                f"Задача для {document_id} уже выполняется ({job.status.value}), "
                f"повторная отправка не создаёт новую"
            )

        return JobHandle(
            job_id=job.job_id,
            document_id=job.document_id,
            status=job.status,
            created_at=job.created_at,
            deduplicated=not created,
        )

    def get_status(self, document_id: str) -> JobStatusView:
        """
        Текущий статус задачи документа.

        Raises:
            JobNotFound: для документа нет задач
        """
        job = self.registry.require(document_id)
        progress, message = _STATUS_PROGRESS[job.status]
        return JobStatusView(
            document_id=document_id,
            status=job.status,
            progress_hint=progress,
            message=message,
            error=job.error_message,
        )

    def get_result(self, document_id: str) -> ExtractionResultView:
        """
        Результат завершённой задачи.

        Raises:
            JobNotFound: для документа нет задач
            ResultNotReady: задача не в статусе completed
        """
        job = self.registry.require(document_id)
        if job.status != JobStatus.COMPLETED:
            raise ResultNotReady(document_id, job.status.value)

        return ExtractionResultView(
            document_id=document_id,
            text=job.extracted_text,
            confidence=job.confidence,
            page_count=job.page_count,
            processing_time_ms=job.processing_time_ms,
            processing_method=job.processing_method,
        )

    def list_jobs(self, status: Optional[JobStatus] = None, limit: int = 100) -> list[ExtractionJob]:
        return self.registry.list_jobs(status=status, limit=limit)

    def history(self, document_id: str) -> list[ExtractionJob]:
        """Текущая задача плюс предыдущие жизненные циклы, новые первыми."""
        current = self.registry.require(document_id)
        previous = self.registry.history(document_id)
        return [current] + list(reversed(previous))

    def shutdown(self) -> None:
        self.runner.shutdown(wait=False)


def build_service(settings: Settings) -> ExtractionJobService:
    """Собирает сервис из конфигурации: хранилище, арбитр, диспетчер, пул."""
    registry = JobRegistry()
    dispatcher = ExtractionDispatcher(
        MultiPassArbitrator.from_settings(settings),
        structured_confidence=settings.structured_text_confidence,
    )
    runner = BackgroundJobRunner(
        registry,
        build_storage(settings),
        dispatcher,
        max_workers=settings.max_concurrent_jobs,
    )
    return ExtractionJobService(registry, runner)
