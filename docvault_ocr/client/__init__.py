"""
Клиентская сторона: опрос серверных задач и локальный запасной путь.

Модули:
    - api_client: HTTP клиент эндпоинтов /ocr/jobs
    - poller: опрос статуса с потолком попыток и повторной отправкой
    - hybrid: переключение на локальное распознавание изображений
"""

from docvault_ocr.client.api_client import OcrApiClient
from docvault_ocr.client.hybrid import HybridFailoverController, HybridOutcome, is_failover_eligible
from docvault_ocr.client.poller import PollerConfig, PollState, StatusPoller

__all__ = [
    "OcrApiClient",
    "HybridFailoverController",
    "HybridOutcome",
    "is_failover_eligible",
    "PollerConfig",
    "PollState",
    "StatusPoller",
]
