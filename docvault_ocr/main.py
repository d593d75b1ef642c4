"""
DocVault OCR — FastAPI сервис извлечения текста из документов хранилища.

Асинхронные задачи:
    POST /ocr/jobs                          — отправка документа (не ждёт извлечения)
    GET  /ocr/jobs/{document_id}/status     — статус для поллера
    GET  /ocr/jobs/{document_id}/result     — результат завершённой задачи
    GET  /ocr/jobs                          — список задач (администрирование)
    GET  /ocr/jobs/{document_id}/history    — текущая и предыдущие задачи документа

Синхронное распознавание:
    POST /ocr/recognize                     — изображение + конфигурация -> текст

Запуск:
    python -m docvault_ocr.main

Или:
    uvicorn docvault_ocr.main:app --host 0.0.0.0 --port 8000
"""

import io
import json
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

import pytesseract
from fastapi import FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse
from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from docvault_ocr.config import Settings, settings
from docvault_ocr.errors import JobNotFound, PermanentFailure, ResultNotReady
from docvault_ocr.schemas import (
    ExtractionJob,
    ExtractionResultView,
    FileInfo,
    JobHandle,
    JobStatus,
    JobStatusView,
    RecognizeConfig,
    RecognizeResponse,
    SubmitRequest,
)
from docvault_ocr.services.arbitrator import MultiPassArbitrator
from docvault_ocr.services.job_service import ExtractionJobService, build_service

# Настройка логгера с временем
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [DocVault-OCR] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


class UnicodeJSONResponse(JSONResponse):
    """JSON ответ в UTF-8 без \\uXXXX экранирования кириллицы."""

    def render(self, content) -> bytes:
        return json.dumps(content, ensure_ascii=False, allow_nan=False).encode(self.charset)


def create_app(
    service: Optional[ExtractionJobService] = None,
    arbitrator: Optional[MultiPassArbitrator] = None,
    app_settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Собирает FastAPI приложение.

    Args:
        service: фасад задач (по умолчанию — из конфигурации)
        arbitrator: арбитр для синхронного распознавания
        app_settings: конфигурация (по умолчанию — глобальная)

    Returns:
        FastAPI: приложение с зарегистрированными маршрутами
    """
    cfg = app_settings or settings
    service = service or build_service(cfg)
    arbitrator = arbitrator or MultiPassArbitrator.from_settings(cfg)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        logger.info("Остановка фонового исполнителя задач")
        service.shutdown()

    app = FastAPI(
        title="DocVault OCR",
        description="Извлечение текста из документов хранилища (Tesseract OCR)",
        version="1.0.0",
        default_response_class=UnicodeJSONResponse,
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health_check() -> dict:
        """
        Проверка работоспособности сервиса.

        Returns:
            dict: статус, доступность Tesseract и текущая конфигурация
        """
        tesseract_ok = False
        try:
            if cfg.tesseract_cmd:
                pytesseract.pytesseract.tesseract_cmd = cfg.tesseract_cmd
            tesseract_version = str(pytesseract.get_tesseract_version())
            tesseract_ok = True
        except (pytesseract.TesseractNotFoundError, OSError) as e:
            tesseract_version = f"error: {e}"

        return {
            "status": "ok" if tesseract_ok else "degraded",
            "service": "docvault-ocr",
            "cpu_count": os.cpu_count(),
            "tesseract": {
                "available": tesseract_ok,
                "version": tesseract_version,
            },
            "config": {
                "render_dpi": cfg.render_dpi,
                "render_dpi_high": cfg.render_dpi_high,
                "ocr_oem": cfg.ocr_oem,
                "ocr_psm": cfg.ocr_psm,
                "max_concurrent_jobs": cfg.max_concurrent_jobs,
                "max_file_size_mb": cfg.max_file_size_mb,
            },
        }

    @app.post("/ocr/jobs", response_model=JobHandle, status_code=202)
    async def submit_job(request: SubmitRequest) -> JobHandle:
        """
        Отправляет документ на извлечение текста.

        Возвращается сразу; для документа с незавершённой задачей
        возвращается существующая задача (deduplicated=true).
        """
        handle = service.submit_extraction(request.document_id, request.settings)
        logger.info(
            f"Отправка: document_id={handle.document_id}, статус={handle.status.value}, "
            f"дубликат={handle.deduplicated}"
        )
        return handle

    @app.get("/ocr/jobs", response_model=list[ExtractionJob])
    async def list_jobs(
        status: Optional[JobStatus] = None,
        limit: int = Query(default=100, ge=1, le=1000),
    ) -> list[ExtractionJob]:
        """Список задач, новые первыми, с фильтром по статусу."""
        return service.list_jobs(status=status, limit=limit)

    @app.get("/ocr/jobs/{document_id}/status", response_model=JobStatusView)
    async def get_status(document_id: str) -> JobStatusView:
        try:
            return service.get_status(document_id)
        except JobNotFound as e:
            raise _not_found(e)

    @app.get("/ocr/jobs/{document_id}/result", response_model=ExtractionResultView)
    async def get_result(document_id: str) -> ExtractionResultView:
        """
        Результат завершённой задачи.

        Raises:
            HTTPException: 404 если задачи нет, 409 если задача не завершена
        """
        try:
            return service.get_result(document_id)
        except JobNotFound as e:
            raise _not_found(e)
        except ResultNotReady as e:
            raise HTTPException(
                status_code=409,
                detail={
                    "error": "result_not_ready",
                    "message": str(e),
                    "status": e.status,
                },
            )

    @app.get("/ocr/jobs/{document_id}/history", response_model=list[ExtractionJob])
    async def get_history(document_id: str) -> list[ExtractionJob]:
        try:
            return service.history(document_id)
        except JobNotFound as e:
            raise _not_found(e)

    @app.post("/ocr/recognize", response_model=RecognizeResponse)
    async def recognize_image(
        file: UploadFile = File(..., description="Изображение для распознавания"),
        config: Optional[str] = Form(
            default=None,
            description='JSON конфигурация: {"language": "rus", "quality_hint": 90, "advanced_mode": false}',
        ),
    ) -> RecognizeResponse:
        """
        Синхронно распознаёт изображение многопроходным арбитром.

        Реестр задач не используется: результат возвращается в ответе.

        Args:
            file: изображение (multipart/form-data)
            config: JSON строка с конфигурацией распознавания

        Returns:
            RecognizeResponse: текст, уверенность, языки проходов

        Raises:
            HTTPException: при ошибках валидации или распознавания
        """
        start_time = time.time()

        # 1. Парсим конфигурацию
        recognize_config = _parse_config(config)
        logger.info(f"Получен файл: {file.filename}, конфиг: {recognize_config.model_dump()}")

        # 2. Читаем и валидируем изображение
        image_bytes = await _validate_and_read_image(file, cfg.max_file_size_mb)

        # 3. Арбитраж в threadpool, чтобы не блокировать event loop
        try:
            result = await run_in_threadpool(
                arbitrator.arbitrate,
                image_bytes,
                recognize_config.language,
                recognize_config.advanced_mode,
                recognize_config.quality_hint,
            )
        except PermanentFailure as e:
            logger.error(f"Распознавание не удалось: {e}")
            raise HTTPException(
                status_code=422,
                detail={
                    "error": "recognition_failed",
                    "message": str(e),
                },
            )

        processing_time_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Распознавание завершено за {processing_time_ms}ms: "
            f"уверенность {result.confidence:.0f}%, языки {result.languages_tried}"
        )

        return RecognizeResponse(
            text=result.text,
            confidence=result.confidence,
            page_count=result.page_count,
            language=result.language,
            languages_tried=result.languages_tried,
            processing_time_ms=processing_time_ms,
            file_info=FileInfo(
                filename=file.filename or "unknown",
                size_bytes=len(image_bytes),
            ),
        )

    return app


def _not_found(error: JobNotFound) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={
            "error": "job_not_found",
            "message": str(error),
        },
    )


def _parse_config(config_json: Optional[str]) -> RecognizeConfig:
    """Конфигурация распознавания из поля формы config (JSON или пусто)."""
    if not config_json:
        return RecognizeConfig()

    try:
        return RecognizeConfig.model_validate_json(config_json)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_config", "message": f"Некорректный config: {problems}"},
        ) from e


async def _validate_and_read_image(file: UploadFile, max_file_size_mb: int) -> bytes:
    """
    Валидирует и читает загруженное изображение.

    Проверяет:
        - Размер файла (не больше max_file_size_mb)
        - Что Pillow распознаёт содержимое как изображение

    Raises:
        HTTPException: при ошибках валидации
    """
    file_bytes = await file.read()

    max_size = max_file_size_mb * 1024 * 1024
    if len(file_bytes) > max_size:
        raise HTTPException(
            status_code=413,
            detail={
                "error": "file_too_large",
                "message": f"Файл слишком большой: {len(file_bytes)} байт, "
                f"максимум: {max_file_size_mb} МБ",
            },
        )

    try:
        with Image.open(io.BytesIO(file_bytes)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "invalid_image",
                "message": f"Файл не является изображением: {e}",
            },
        )

    return file_bytes


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Запуск DocVault OCR на {settings.host}:{settings.port}")

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="info",
    )
