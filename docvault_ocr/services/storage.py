"""
Хранилище документов — внешний коллаборатор подсистемы.

Единственный контракт: fetch_payload(document_id) -> (bytes, category).
Любая ошибка получения байтов превращается в PayloadRetrievalFailure,
что даёт задаче статус errored.

Реализации:
    - LocalDocumentStorage: файлы <document_id>.<ext> в директории
    - HttpDocumentStorage: хостинговое хранилище по HTTP (httpx)
"""

import logging
from pathlib import Path
from typing import Optional, Union

import httpx

from docvault_ocr.config import Settings
from docvault_ocr.errors import PayloadRetrievalFailure
from docvault_ocr.schemas import DocumentCategory

logger = logging.getLogger(__name__)

STRUCTURED_EXTENSIONS = {"pdf"}
RASTER_EXTENSIONS = {"png", "jpg", "jpeg", "tif", "tiff", "bmp", "gif", "webp"}


def category_for_extension(extension: str) -> str:
    """
    Категория документа по расширению файла.

    Для неизвестных расширений возвращается само расширение:
    диспетчер отклонит его как неподдерживаемую категорию.
    """
    ext = extension.lower().lstrip(".")
    if ext in STRUCTURED_EXTENSIONS:
        return DocumentCategory.STRUCTURED_TEXT.value
    if ext in RASTER_EXTENSIONS:
        return DocumentCategory.RASTER_IMAGE.value
    return ext or "unknown"


def _validate_document_id(document_id: str) -> None:
    if not document_id or "/" in document_id or "\\" in document_id or ".." in document_id:
        raise PayloadRetrievalFailure(f"Некорректный идентификатор документа: {document_id!r}")


class LocalDocumentStorage:
    """Документы в локальной директории: <root>/<document_id>.<ext>."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def fetch_payload(self, document_id: str) -> tuple[bytes, str]:
        _validate_document_id(document_id)

        if not self.root.is_dir():
            raise PayloadRetrievalFailure(f"Директория хранилища {self.root} не найдена")

        # Точное совпадение имени без расширения: id не интерпретируется как шаблон
        matches = sorted(
            p for p in self.root.iterdir() if p.is_file() and p.suffix and p.stem == document_id
        )
        if not matches:
            raise PayloadRetrievalFailure(f"Документ {document_id} не найден в {self.root}")

        path = matches[0]
        try:
            payload = path.read_bytes()
        except OSError as e:
            raise PayloadRetrievalFailure(f"Ошибка чтения {path}: {e}") from e

        if not payload:
            raise PayloadRetrievalFailure(f"Файл документа {document_id} пуст")

        return payload, category_for_extension(path.suffix)


class HttpDocumentStorage:
    """
    Хостинговое хранилище файлов.

    Эндпоинты:
        GET {base}/files/{id}           — метаданные: type, extension
        GET {base}/files/{id}/download  — содержимое
        GET {base}/files/{id}/view      — запасной путь, если download не отдал файл
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        headers = {"X-Api-Key": api_key} if api_key else {}
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def fetch_payload(self, document_id: str) -> tuple[bytes, str]:
        _validate_document_id(document_id)

        try:
            meta_response = self._client.get(f"/files/{document_id}")
            meta_response.raise_for_status()
            metadata = meta_response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PayloadRetrievalFailure(
                f"Не удалось получить метаданные документа {document_id}: {e}"
            ) from e

        payload = self._download(document_id)
        return payload, self._category_from_metadata(metadata)

    def _download(self, document_id: str) -> bytes:
        try:
            response = self._client.get(f"/files/{document_id}/download")
            if response.status_code != 200:
                logger.info(
                    f"Прямое скачивание не удалось ({response.status_code}), пробуем view"
                )
                response = self._client.get(f"/files/{document_id}/view")
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise PayloadRetrievalFailure(f"Не удалось скачать документ {document_id}: {e}") from e

        if not response.content:
            raise PayloadRetrievalFailure(f"Скачанный файл документа {document_id} пуст")

        return response.content

    @staticmethod
    def _category_from_metadata(metadata: dict) -> str:
        file_type = str(metadata.get("type") or "")
        extension = str(metadata.get("extension") or "").lower()

        if file_type == "document" and extension in STRUCTURED_EXTENSIONS:
            return DocumentCategory.STRUCTURED_TEXT.value
        if file_type == "image":
            return DocumentCategory.RASTER_IMAGE.value
        return f"{file_type or 'unknown'}/{extension or 'unknown'}"


def build_storage(settings: Settings) -> Union[LocalDocumentStorage, HttpDocumentStorage]:
    """Хранилище по конфигурации: HTTP если задан storage_base_url, иначе локальное."""
    if settings.storage_base_url:
        return HttpDocumentStorage(
            settings.storage_base_url,
            api_key=settings.storage_api_key,
            timeout_seconds=settings.storage_timeout_seconds,
        )
    return LocalDocumentStorage(settings.storage_dir)
