"""
Гибридный контроллер: сервер, а при его отказе — локальное распознавание.

Локально поддерживаются только растровые изображения: путь текстового
слоя структурированных документов есть только на сервере. Локальный
прогон идёт мимо реестра задач, результат возвращается напрямую.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

import httpx

from docvault_ocr.client.poller import PollState, StatusPoller
from docvault_ocr.errors import (
    FailoverUnavailable,
    JobFailed,
    PayloadRetrievalFailure,
    PollTimeout,
)
from docvault_ocr.schemas import DocumentCategory, ExtractionSettings
from docvault_ocr.services.arbitrator import MultiPassArbitrator

logger = logging.getLogger(__name__)

LOCUS_SERVER = "server"
LOCUS_CLIENT = "client"


def is_failover_eligible(category: Union[DocumentCategory, str, None]) -> bool:
    """Локальный прогон возможен только для растровых изображений."""
    try:
        return DocumentCategory(category) is DocumentCategory.RASTER_IMAGE
    except ValueError:
        return False


@dataclass
class HybridOutcome:
    """
    Результат гибридной обработки.

    Attributes:
        locus: где получен результат — server или client
        text: извлечённый текст
        confidence: уверенность 0-100
        page_count: количество страниц
        language: язык лучшего прохода (только для client)
        server_error: ошибка сервера, из-за которой сработал локальный прогон
    """

    locus: str
    text: str
    confidence: float
    page_count: int
    language: Optional[str] = None
    server_error: Optional[Exception] = None


class HybridFailoverController:
    """
    Серверная обработка с локальным запасным путём.

    Attributes:
        poller: поллер статуса серверной задачи
        arbitrator: локальный многопроходный арбитр (новый движок на попытку)
        storage: источник байтов документа с методом fetch_payload,
                 если байты не переданы вызывающей стороной
    """

    def __init__(
        self,
        poller: StatusPoller,
        arbitrator: MultiPassArbitrator,
        storage=None,
    ):
        self.poller = poller
        self.arbitrator = arbitrator
        self.storage = storage

    def process(
        self,
        document_id: str,
        settings: Optional[ExtractionSettings] = None,
        category: Union[DocumentCategory, str, None] = None,
        payload: Optional[bytes] = None,
        on_slow: Optional[Callable[[PollState], None]] = None,
    ) -> HybridOutcome:
        """
        Обрабатывает документ на сервере, при отказе — локально.

        Args:
            document_id: идентификатор документа
            settings: настройки извлечения
            category: категория документа (по умолчанию из settings)
            payload: уже доступные байты документа
            on_slow: сигнал «слишком долго» от поллера

        Returns:
            HybridOutcome: результат и место выполнения

        Raises:
            FailoverUnavailable: сервер не справился, а локально категория не поддерживается
            PollCancelled: опрос отменён вызывающей стороной
        """
        settings = settings or ExtractionSettings()
        category = category or settings.document_category

        try:
            result = self.poller.run(document_id, settings, on_slow=on_slow)
        except (JobFailed, PollTimeout, httpx.HTTPError) as e:
            if not is_failover_eligible(category):
                logger.error(f"Сервер не обработал {document_id}, локальный путь недоступен: {e}")
                raise FailoverUnavailable(_category_name(category), e) from e

            logger.warning(f"Сервер не обработал {document_id}, переключение на локальное распознавание: {e}")
            return self.run_locally(document_id, settings, payload=payload, server_error=e)

        return HybridOutcome(
            locus=LOCUS_SERVER,
            text=result.text,
            confidence=result.confidence,
            page_count=result.page_count,
        )

    def run_locally(
        self,
        document_id: str,
        settings: Optional[ExtractionSettings] = None,
        payload: Optional[bytes] = None,
        server_error: Optional[Exception] = None,
    ) -> HybridOutcome:
        """
        Распознаёт изображение в процессе вызывающей стороны.

        Реестр задач не используется и не обновляется.

        Raises:
            PayloadRetrievalFailure: байты не переданы и не получены из хранилища
            PermanentFailure: ни одна попытка распознавания не запустилась
        """
        settings = settings or ExtractionSettings()
        if payload is None:
            payload = self._load_payload(document_id)

        result = self.arbitrator.arbitrate(
            payload,
            language=settings.language,
            advanced_mode=settings.advanced_mode,
            quality_hint=settings.quality_hint,
        )
        logger.info(
            f"Локальное распознавание {document_id}: уверенность {result.confidence:.0f}%, "
            f"языки {result.languages_tried}"
        )
        return HybridOutcome(
            locus=LOCUS_CLIENT,
            text=result.text,
            confidence=result.confidence,
            page_count=result.page_count,
            language=result.language,
            server_error=server_error,
        )

    def _load_payload(self, document_id: str) -> bytes:
        if self.storage is None:
            raise PayloadRetrievalFailure(
                f"Нет байтов документа {document_id} для локального распознавания"
            )
        payload, _category = self.storage.fetch_payload(document_id)
        return payload


def _category_name(category: Union[DocumentCategory, str, None]) -> str:
    if isinstance(category, DocumentCategory):
        return category.value
    return str(category) if category else "unknown"
