"""
Поллер статуса задачи — клиентская сторона.

Опрашивает GET /ocr/jobs/{document_id}/status с фиксированным интервалом:
    - completed        -> один запрос результата, опрос завершён
    - failed / errored -> JobFailed (повтор — только повторной отправкой)
    - pending дольше stall_threshold проверок -> ровно одна повторная отправка
    - больше slow_threshold попыток -> однократный сигнал «слишком долго»
    - max_attempts попыток или max_consecutive_errors ошибок подряд -> PollTimeout
    - ошибка запроса результата после completed -> PollTimeout

Опрос отменяется в любой момент через threading.Event (PollCancelled).
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from pydantic import ValidationError

from docvault_ocr.config import Settings
from docvault_ocr.errors import (
    JobFailed,
    JobNotFound,
    PollCancelled,
    PollTimeout,
    ResultNotReady,
)
from docvault_ocr.schemas import (
    ExtractionResultView,
    ExtractionSettings,
    JobHandle,
    JobStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollerConfig:
    """
    Параметры опроса.

    Attributes:
        interval_seconds: пауза между запросами статуса
        max_attempts: потолок количества запросов
        stall_threshold: после стольких проверок в pending — повторная отправка
        slow_threshold: после стольких попыток — сигнал «слишком долго»
        max_consecutive_errors: ошибок опроса подряд до PollTimeout
        submit_retry_delay_seconds: пауза перед повтором первой отправки
    """

    interval_seconds: float = 2.0
    max_attempts: int = 60
    stall_threshold: int = 10
    slow_threshold: int = 15
    max_consecutive_errors: int = 3
    submit_retry_delay_seconds: float = 1.5

    @classmethod
    def from_settings(cls, settings: Settings) -> "PollerConfig":
        return cls(
            interval_seconds=settings.poll_interval_seconds,
            max_attempts=settings.poll_max_attempts,
            stall_threshold=settings.poll_stall_threshold,
            slow_threshold=settings.poll_slow_threshold,
            max_consecutive_errors=settings.poll_max_consecutive_errors,
            submit_retry_delay_seconds=settings.submit_retry_delay_seconds,
        )


@dataclass
class PollState:
    """Состояние одного опроса."""

    document_id: str
    attempts: int = 0
    consecutive_errors: int = 0
    pending_checks: int = 0
    restarted: bool = False
    slow_signalled: bool = False
    last_status: Optional[JobStatus] = None


class StatusPoller:
    """
    Поллер поверх клиента API (OcrApiClient или совместимого объекта).

    Attributes:
        client: объект с submit_extraction/get_status/get_result
        config: параметры опроса
        cancel_event: событие отмены; ожидание между попытками прерывается им
    """

    def __init__(
        self,
        client,
        config: Optional[PollerConfig] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.client = client
        self.config = config or PollerConfig()
        self.cancel_event = cancel_event or threading.Event()

    def cancel(self) -> None:
        self.cancel_event.set()

    def run(
        self,
        document_id: str,
        settings: Optional[ExtractionSettings] = None,
        on_slow: Optional[Callable[[PollState], None]] = None,
    ) -> ExtractionResultView:
        """
        Отправляет задачу и ждёт результата.

        Первая отправка при транспортной ошибке повторяется один раз
        после короткой паузы.

        Raises:
            PollTimeout: исчерпан лимит попыток или ошибок подряд
            JobFailed: задача завершилась failed/errored
            PollCancelled: опрос отменён
        """
        settings = settings or ExtractionSettings()
        handle = self._submit_with_retry(document_id, settings)
        logger.info(
            f"Задача отправлена: document_id={document_id}, статус={handle.status.value}"
        )
        return self.poll(document_id, settings, on_slow=on_slow)

    def poll(
        self,
        document_id: str,
        settings: Optional[ExtractionSettings] = None,
        on_slow: Optional[Callable[[PollState], None]] = None,
    ) -> ExtractionResultView:
        """Опрашивает статус уже отправленной задачи до терминального состояния."""
        settings = settings or ExtractionSettings()
        state = PollState(document_id=document_id)

        while state.attempts < self.config.max_attempts:
            self._check_cancelled()
            state.attempts += 1

            try:
                view = self.client.get_status(document_id)
            except (httpx.HTTPError, JobNotFound, ValidationError) as e:
                state.consecutive_errors += 1
                logger.warning(
                    f"Ошибка опроса {document_id} ({state.consecutive_errors} подряд): {e}"
                )
                if state.consecutive_errors >= self.config.max_consecutive_errors:
                    raise PollTimeout(
                        f"Опрос статуса {document_id} прерван: "
                        f"{state.consecutive_errors} ошибок подряд",
                        attempts=state.attempts,
                    ) from e
                self._wait()
                continue

            state.consecutive_errors = 0
            state.last_status = view.status

            if view.status == JobStatus.COMPLETED:
                logger.info(f"Задача {document_id} завершена за {state.attempts} попыток")
                return self._fetch_result(state)

            if view.status in (JobStatus.FAILED, JobStatus.ERRORED):
                raise JobFailed(document_id, view.status.value, view.error)

            if view.status == JobStatus.PENDING:
                state.pending_checks += 1
                if state.pending_checks > self.config.stall_threshold and not state.restarted:
                    self._restart(state, settings)

            if state.attempts > self.config.slow_threshold and not state.slow_signalled:
                state.slow_signalled = True
                logger.info(f"Задача {document_id} выполняется дольше обычного")
                if on_slow is not None:
                    on_slow(state)

            if state.attempts < self.config.max_attempts:
                self._wait()

        raise PollTimeout(
            f"Задача {document_id} не завершилась за {state.attempts} попыток "
            f"(последний статус: {state.last_status.value if state.last_status else 'неизвестен'}). "
            f"Фоновая обработка может продолжаться.",
            attempts=state.attempts,
        )

    def _fetch_result(self, state: PollState) -> ExtractionResultView:
        try:
            return self.client.get_result(state.document_id)
        except (httpx.HTTPError, JobNotFound, ResultNotReady, ValidationError) as e:
            logger.error(f"Не удалось получить результат {state.document_id}: {e}")
            raise PollTimeout(
                f"Задача {state.document_id} завершена, но результат не получен: {e}",
                attempts=state.attempts,
            ) from e

    def _submit_with_retry(self, document_id: str, settings: ExtractionSettings) -> JobHandle:
        try:
            return self.client.submit_extraction(document_id, settings)
        except httpx.HTTPError as e:
            logger.warning(f"Отправка {document_id} не удалась, повтор: {e}")
            self._wait(self.config.submit_retry_delay_seconds)
            return self.client.submit_extraction(document_id, settings)

    def _restart(self, state: PollState, settings: ExtractionSettings) -> None:
        state.restarted = True
        logger.warning(
            f"Задача {state.document_id} в pending {state.pending_checks} проверок, "
            f"повторная отправка"
        )
        try:
            self.client.submit_extraction(state.document_id, settings)
        except httpx.HTTPError as e:
            logger.warning(f"Повторная отправка {state.document_id} не удалась: {e}")

    def _wait(self, seconds: Optional[float] = None) -> None:
        delay = self.config.interval_seconds if seconds is None else seconds
        if self.cancel_event.wait(delay):
            raise PollCancelled("Опрос статуса отменён")

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise PollCancelled("Опрос статуса отменён")
