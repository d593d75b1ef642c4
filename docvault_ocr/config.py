"""
Единая конфигурация сервиса извлечения текста DocVault OCR.

Объединяет настройки API, фонового исполнителя задач, движка распознавания
и клиентского поллера статуса в одном классе.
Все значения читаются из .env файла (или переменных окружения).

Единый префикс: DOCVAULT_OCR_
Документация по параметрам: .env.example
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Настройки сервиса извлечения текста.

    Читает переменные с префиксом DOCVAULT_OCR_ из .env файла.
    В отличие от чистого OCR-сервиса, все поля имеют значения по умолчанию:
    пакет используется и на стороне сервера, и на стороне клиента.
    """

    model_config = SettingsConfigDict(
        env_prefix="DOCVAULT_OCR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Сервер ---
    host: str = "0.0.0.0"
    port: int = 8000

    # --- API: лимиты ---
    max_file_size_mb: int = 25

    # --- Хранилище документов ---
    # Если задан storage_base_url — документы скачиваются по HTTP,
    # иначе читаются из локальной директории storage_dir
    storage_dir: str = "./storage"
    storage_base_url: Optional[str] = None
    storage_api_key: Optional[str] = None
    storage_timeout_seconds: float = 60.0

    # --- Tesseract ---
    # Путь к бинарнику передаётся в движок явно, без чтения PATH внутри движка
    tesseract_cmd: Optional[str] = None
    ocr_oem: int = 1
    ocr_psm: int = 3

    # --- Split: PDF -> images ---
    render_dpi: int = 300
    render_dpi_high: int = 400
    render_thread_count: int = 2
    render_format: str = "png"
    # quality_hint >= этого порога включает высокое разрешение
    high_quality_threshold: int = 90

    # --- OSD / Deskew (предобработка в расширенном режиме) ---
    osd_crop_percent: float = 0.15
    osd_resize_px: int = 2048
    osd_confidence_threshold: float = 2.0
    deskew_resize_px: int = 1200
    deskew_num_peaks: int = 20
    skew_threshold: float = 0.5

    # --- Арбитраж между проходами ---
    base_language: str = "eng"
    fallback_languages: list[str] = Field(default_factory=lambda: ["eng"])
    advanced_fallback_languages: list[str] = Field(
        default_factory=lambda: ["eng", "deu", "fra", "spa", "ita"]
    )
    low_confidence_threshold: float = 40.0
    early_exit_confidence: float = 75.0
    length_multiplier: float = 1.2
    confidence_multiplier: float = 0.8
    structured_text_confidence: float = 95.0

    # --- Фоновое исполнение задач ---
    max_concurrent_jobs: int = 4

    # --- Клиентский поллер ---
    api_base_url: str = "http://localhost:8000"
    api_timeout_seconds: float = 30.0
    poll_interval_seconds: float = 2.0
    poll_max_attempts: int = 60
    poll_stall_threshold: int = 10
    poll_slow_threshold: int = 15
    poll_max_consecutive_errors: int = 3
    submit_retry_delay_seconds: float = 1.5


# Глобальный экземпляр настроек
settings = Settings()
