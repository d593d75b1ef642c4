"""
Схемы данных DocVault OCR.

Включает:
    - Перечисления статусов задачи и категорий документа
    - Pydantic модели для API и записи реестра задач
    - Внутренние dataclass'ы для движка, арбитра и предобработки
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# =============================================================================
# Перечисления
# =============================================================================


class DocumentCategory(str, Enum):
    """
    Категория документа с точки зрения извлечения текста.

    STRUCTURED_TEXT — документ со встроенным текстовым слоем (PDF).
    RASTER_IMAGE — растровое изображение, текст только через OCR.
    """

    STRUCTURED_TEXT = "structured-text"
    RASTER_IMAGE = "raster-image"


class JobStatus(str, Enum):
    """
    Статус задачи извлечения.

    Переходы только вперёд:
        pending -> processing -> completed | failed | errored
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    ERRORED = "errored"


IN_FLIGHT_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PROCESSING})
TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.ERRORED})

# Способ получения текста (сохраняется в записи задачи)
METHOD_NATIVE_TEXT = "native-text"
METHOD_OCR = "ocr"
METHOD_PLACEHOLDER = "placeholder"


# =============================================================================
# Pydantic модели: задачи и API
# =============================================================================


class ExtractionSettings(BaseModel):
    """
    Настройки извлечения, переданные вызывающей стороной.

    Attributes:
        language: основной язык Tesseract ("eng", "rus", ...)
        quality_hint: подсказка качества 1-100, высокое значение -> высокий DPI
        document_category: категория документа по мнению вызывающей стороны
        advanced_mode: расширенный режим (больше языков, предобработка, высокий DPI)
    """

    language: str = Field(default="eng", min_length=1)
    quality_hint: int = Field(default=75, ge=1, le=100)
    document_category: Optional[DocumentCategory] = None
    advanced_mode: bool = False


class ExtractionJob(BaseModel):
    """
    Запись реестра: одна задача извлечения текста для документа.

    Attributes:
        job_id: UUID жизненного цикла (новый при каждой повторной отправке)
        document_id: внешний идентификатор документа, уникальный ключ
        status: текущий статус задачи
        extracted_text: текст (пустой до completed, заглушка при ошибке)
        confidence: уверенность 0-100, значима только для completed
        page_count: количество страниц
        processing_time_ms: время обработки в мс
        processing_method: native-text / ocr / placeholder
        error_message: сообщение об ошибке для failed/errored
        settings: настройки извлечения
        created_at: время создания
        updated_at: время последней записи
    """

    job_id: str
    document_id: str
    status: JobStatus
    extracted_text: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=100.0)
    page_count: int = Field(default=1, ge=1)
    processing_time_ms: int = 0
    processing_method: Optional[str] = None
    error_message: Optional[str] = None
    settings: ExtractionSettings = Field(default_factory=ExtractionSettings)
    created_at: datetime
    updated_at: datetime

    @property
    def in_flight(self) -> bool:
        return self.status in IN_FLIGHT_STATUSES


class SubmitRequest(BaseModel):
    """Тело запроса POST /ocr/jobs."""

    document_id: str = Field(min_length=1)
    settings: ExtractionSettings = Field(default_factory=ExtractionSettings)


class JobHandle(BaseModel):
    """
    Ответ на отправку задачи.

    Attributes:
        job_id: UUID жизненного цикла задачи
        document_id: идентификатор документа
        status: статус на момент ответа
        created_at: время создания задачи
        deduplicated: True если возвращена уже выполняющаяся задача
    """

    job_id: str
    document_id: str
    status: JobStatus
    created_at: datetime
    deduplicated: bool = False


class JobStatusView(BaseModel):
    """
    Статус задачи для поллера.

    Attributes:
        document_id: идентификатор документа
        status: текущий статус
        progress_hint: грубая оценка прогресса 0.0-1.0
        message: человекочитаемое описание этапа
        error: сообщение об ошибке (для failed/errored)
    """

    document_id: str
    status: JobStatus
    progress_hint: Optional[float] = None
    message: Optional[str] = None
    error: Optional[str] = None


class ExtractionResultView(BaseModel):
    """
    Результат извлечения (только для completed).

    Attributes:
        document_id: идентификатор документа
        text: извлечённый текст или заглушка
        confidence: уверенность 0-100
        page_count: количество страниц
        processing_time_ms: время обработки в мс
        processing_method: native-text / ocr / placeholder
    """

    document_id: str
    text: str
    confidence: float
    page_count: int
    processing_time_ms: int
    processing_method: Optional[str] = None


class RecognizeConfig(BaseModel):
    """
    Конфигурация прямого распознавания изображения (POST /ocr/recognize).

    Attributes:
        language: основной язык
        quality_hint: подсказка качества 1-100
        advanced_mode: расширенный режим
    """

    language: str = Field(default="eng", min_length=1)
    quality_hint: int = Field(default=75, ge=1, le=100)
    advanced_mode: bool = False


class FileInfo(BaseModel):
    """
    Информация о загруженном файле.

    Attributes:
        filename: имя файла
        size_bytes: размер файла в байтах
    """

    filename: str
    size_bytes: int


class RecognizeResponse(BaseModel):
    """
    Ответ прямого распознавания.

    Attributes:
        text: распознанный текст или заглушка
        confidence: уверенность 0-100
        page_count: количество страниц
        language: язык лучшего прохода
        languages_tried: языки всех выполненных проходов
        processing_time_ms: время обработки в мс
        file_info: информация о файле
    """

    text: str
    confidence: float
    page_count: int
    language: Optional[str] = None
    languages_tried: list[str] = []
    processing_time_ms: int
    file_info: FileInfo


# =============================================================================
# Внутренние dataclass'ы
# =============================================================================


@dataclass
class EngineResult:
    """
    Результат одного прогона движка распознавания.

    Attributes:
        text: распознанный текст (страницы через пустую строку)
        confidence: средняя уверенность по словам (0-100)
        page_count: количество распознанных страниц
    """

    text: str
    confidence: float
    page_count: int = 1


@dataclass
class ArbitrationResult:
    """
    Итог арбитража между проходами.

    Attributes:
        text: лучший текст или заглушка
        confidence: уверенность лучшего прохода (0 для заглушки)
        page_count: количество страниц лучшего прохода
        language: язык лучшего прохода (None для заглушки)
        languages_tried: языки, для которых движок действительно отработал
        placeholder: True если текст не найден ни одним проходом
    """

    text: str
    confidence: float
    page_count: int = 1
    language: Optional[str] = None
    languages_tried: list[str] = field(default_factory=list)
    placeholder: bool = False


@dataclass
class NativeText:
    """
    Текстовый слой структурированного документа.

    Attributes:
        text: встроенный текст (может быть пустым для сканов)
        page_count: количество страниц
    """

    text: str
    page_count: int


@dataclass
class ExtractionOutcome:
    """
    Результат диспетчера: то, что записывается в задачу.

    Attributes:
        text: извлечённый текст
        confidence: уверенность 0-100
        page_count: количество страниц
        method: native-text / ocr / placeholder
    """

    text: str
    confidence: float
    page_count: int
    method: str


@dataclass
class PageOrientation:
    """
    Результат определения ориентации страницы (OSD).

    Attributes:
        rotate: угол поворота в градусах (0, 90, 180, 270)
        confidence: уверенность Tesseract
        needs_rotation: флаг необходимости поворота
    """

    rotate: int
    confidence: float
    needs_rotation: bool


@dataclass
class PageSkew:
    """
    Результат определения наклона страницы (deskew).

    Attributes:
        angle: угол наклона в градусах (отрицательный = наклон влево)
        needs_deskew: флаг необходимости коррекции
    """

    angle: float
    needs_deskew: bool
