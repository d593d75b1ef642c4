"""
Реестр задач извлечения текста.

Одна запись на документ (ключ — document_id). Гарантии:
    - не более одной незавершённой (pending/processing) задачи на документ
    - статусы меняются только вперёд
    - записи не удаляются: при повторной отправке после завершения
      предыдущая задача переносится в историю документа

Хранилище — внешнее key-value; здесь in-memory реализация с атомарной
операцией compare-and-set, на которой строится проверка-и-создание.
"""

import logging
import threading
import uuid
from datetime import datetime
from typing import Callable, Optional

from docvault_ocr.errors import JobNotFound
from docvault_ocr.schemas import (
    TERMINAL_STATUSES,
    ExtractionJob,
    ExtractionSettings,
    JobStatus,
)

logger = logging.getLogger(__name__)

_STATUS_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
    JobStatus.ERRORED: 2,
}


class InMemoryJobStore:
    """
    In-memory key-value хранилище записей задач.

    Особенности:
        - Хранение в памяти (без персистентности)
        - compare_and_set под блокировкой — единственная операция записи
    """

    def __init__(self):
        self._jobs: dict[str, ExtractionJob] = {}
        self._history: dict[str, list[ExtractionJob]] = {}
        self._lock = threading.Lock()

    def get(self, document_id: str) -> Optional[ExtractionJob]:
        with self._lock:
            return self._jobs.get(document_id)

    def compare_and_set(
        self,
        document_id: str,
        expected_job_id: Optional[str],
        job: ExtractionJob,
        allow: Optional[Callable[[ExtractionJob], bool]] = None,
    ) -> bool:
        """
        Записывает job, если текущая запись имеет ожидаемый job_id.

        Args:
            document_id: ключ записи
            expected_job_id: job_id текущей записи (None — записи нет)
            job: новая запись целиком
            allow: дополнительное условие над текущей записью,
                проверяется под той же блокировкой

        Returns:
            bool: True если запись выполнена
        """
        with self._lock:
            current = self._jobs.get(document_id)
            current_job_id = current.job_id if current else None
            if current_job_id != expected_job_id:
                return False
            if current is not None and allow is not None and not allow(current):
                return False

            if current is not None and current.job_id != job.job_id:
                self._history.setdefault(document_id, []).append(current)

            self._jobs[document_id] = job
            return True

    def list_jobs(self) -> list[ExtractionJob]:
        with self._lock:
            return list(self._jobs.values())

    def history(self, document_id: str) -> list[ExtractionJob]:
        with self._lock:
            return list(self._history.get(document_id, []))


class JobRegistry:
    """Реестр задач поверх key-value хранилища."""

    def __init__(self, store: Optional[InMemoryJobStore] = None):
        self.store = store or InMemoryJobStore()

    def get(self, document_id: str) -> Optional[ExtractionJob]:
        return self.store.get(document_id)

    def require(self, document_id: str) -> ExtractionJob:
        job = self.store.get(document_id)
        if job is None:
            raise JobNotFound(document_id)
        return job

    def create_or_get(
        self,
        document_id: str,
        settings: ExtractionSettings,
        status: JobStatus = JobStatus.PROCESSING,
    ) -> tuple[ExtractionJob, bool]:
        """
        Создаёт задачу, если для документа нет незавершённой.

        Проверка и создание выполняются через compare-and-set: если между
        чтением и записью другая отправка успела создать задачу, цикл
        повторяется и возвращает её.

        Args:
            document_id: идентификатор документа
            settings: настройки извлечения
            status: начальный статус (pending или processing)

        Returns:
            tuple: (задача, True если создана новая)
        """
        while True:
            current = self.store.get(document_id)
            if current is not None and current.in_flight:
                return current, False

            now = datetime.now()
            job = ExtractionJob(
                job_id=str(uuid.uuid4()),
                document_id=document_id,
                status=status,
                settings=settings,
                created_at=now,
                updated_at=now,
            )
            expected = current.job_id if current else None
            if self.store.compare_and_set(document_id, expected, job):
                logger.info(
                    f"Создана задача: document_id={document_id}, job_id={job.job_id}, "
                    f"статус={job.status.value}"
                )
                return job, True

    def write(self, job: ExtractionJob) -> bool:
        """
        Перезаписывает запись задачи целиком.

        Запись с чужим job_id (устаревший жизненный цикл) или с переходом
        статуса назад игнорируется, поэтому повторные записи идемпотентны.
        Переход проверяется атомарно вместе с записью.

        Returns:
            bool: True если запись выполнена
        """
        job = job.model_copy(update={"updated_at": datetime.now()})
        rejected: list[JobStatus] = []

        def allow(current: ExtractionJob) -> bool:
            if _can_transition(current.status, job.status):
                return True
            rejected.append(current.status)
            return False

        if self.store.compare_and_set(job.document_id, job.job_id, job, allow=allow):
            return True

        if rejected:
            logger.warning(
                f"Недопустимый переход статуса {rejected[0].value} -> {job.status.value} "
                f"для document_id={job.document_id}"
            )
        else:
            logger.warning(
                f"Запись устаревшей задачи проигнорирована: document_id={job.document_id}, "
                f"job_id={job.job_id}"
            )
        return False

    def list_jobs(self, status: Optional[JobStatus] = None, limit: int = 100) -> list[ExtractionJob]:
        """Задачи, новые первыми, с необязательным фильтром по статусу."""
        jobs = self.store.list_jobs()
        if status is not None:
            jobs = [job for job in jobs if job.status == status]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[: max(1, limit)]

    def history(self, document_id: str) -> list[ExtractionJob]:
        """Предыдущие жизненные циклы документа, от старых к новым."""
        return self.store.history(document_id)


def _can_transition(current: JobStatus, new: JobStatus) -> bool:
    if current == new:
        return True
    if current in TERMINAL_STATUSES:
        return False
    return _STATUS_RANK[new] > _STATUS_RANK[current]
