"""
HTTP клиент API извлечения текста (httpx).

Тонкая обёртка над эндпоинтами /ocr/jobs для поллера и гибридного
контроллера. Ответы разбираются в те же pydantic модели, что отдаёт сервер.
"""

import logging
from typing import Optional

import httpx

from docvault_ocr.config import Settings
from docvault_ocr.errors import JobNotFound, ResultNotReady
from docvault_ocr.schemas import (
    ExtractionResultView,
    ExtractionSettings,
    JobHandle,
    JobStatusView,
    SubmitRequest,
)

logger = logging.getLogger(__name__)


class OcrApiClient:
    """
    Клиент сервиса DocVault OCR.

    Транспортные ошибки (httpx.HTTPError) пробрасываются вызывающей стороне:
    поллер считает их ошибками опроса.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "OcrApiClient":
        return cls(settings.api_base_url, timeout_seconds=settings.api_timeout_seconds)

    def __enter__(self) -> "OcrApiClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def submit_extraction(
        self,
        document_id: str,
        settings: Optional[ExtractionSettings] = None,
    ) -> JobHandle:
        request = SubmitRequest(
            document_id=document_id,
            settings=settings or ExtractionSettings(),
        )
        response = self._client.post("/ocr/jobs", json=request.model_dump(mode="json"))
        response.raise_for_status()
        return JobHandle.model_validate(response.json())

    def get_status(self, document_id: str) -> JobStatusView:
        """
        Статус задачи документа.

        Raises:
            JobNotFound: сервер ответил 404
            httpx.HTTPError: транспортная ошибка или иной код ответа
        """
        response = self._client.get(f"/ocr/jobs/{document_id}/status")
        if response.status_code == 404:
            raise JobNotFound(document_id)
        response.raise_for_status()
        return JobStatusView.model_validate(response.json())

    def get_result(self, document_id: str) -> ExtractionResultView:
        """
        Результат завершённой задачи.

        Raises:
            JobNotFound: сервер ответил 404
            ResultNotReady: сервер ответил 409
        """
        response = self._client.get(f"/ocr/jobs/{document_id}/result")
        if response.status_code == 404:
            raise JobNotFound(document_id)
        if response.status_code == 409:
            detail = response.json().get("detail", {})
            raise ResultNotReady(document_id, str(detail.get("status", "unknown")))
        response.raise_for_status()
        return ExtractionResultView.model_validate(response.json())
