"""
Исключения подсистемы извлечения текста.

Серверная сторона:
    - PayloadRetrievalFailure, UnsupportedCategory -> задача в статусе errored
    - PermanentFailure -> задача в статусе failed
    - EngineInitFailure -> поглощается арбитром, переход к следующему языку

Клиентская сторона:
    - PollTimeout, PollCancelled, JobFailed, FailoverUnavailable

Отсутствие текста не является исключением: арбитр возвращает заглушку
с уверенностью 0.
"""

from typing import Optional


class ExtractionError(Exception):
    """Базовое исключение подсистемы извлечения текста."""


class PayloadRetrievalFailure(ExtractionError):
    """Не удалось получить байты документа из хранилища."""


class UnsupportedCategory(ExtractionError):
    """Для категории документа нет пути извлечения текста."""

    def __init__(self, category: object):
        self.category = category
        super().__init__(f"Неподдерживаемая категория документа: {category!r}")


class EngineInitFailure(ExtractionError):
    """Одна попытка распознавания (язык/конфигурация) не смогла стартовать."""


class PermanentFailure(ExtractionError):
    """Все стратегии извлечения исчерпаны, повторять без вмешательства бессмысленно."""


class JobNotFound(ExtractionError):
    """Для документа нет ни одной задачи извлечения."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Задача извлечения для документа {document_id} не найдена")


class ResultNotReady(ExtractionError):
    """Результат запрошен до перехода задачи в статус completed."""

    def __init__(self, document_id: str, status: str):
        self.document_id = document_id
        self.status = status
        super().__init__(
            f"Результат для документа {document_id} ещё не готов (статус: {status})"
        )


class PollTimeout(ExtractionError):
    """
    Поллер исчерпал лимит попыток или подряд получил слишком много ошибок.

    Фоновая задача на сервере при этом может продолжать выполняться.
    """

    def __init__(self, message: str, attempts: int = 0):
        self.attempts = attempts
        super().__init__(message)


class PollCancelled(ExtractionError):
    """Опрос статуса отменён вызывающей стороной."""


class JobFailed(ExtractionError):
    """
    Серверная задача завершилась статусом failed или errored.

    Повтор возможен только через повторную отправку задачи.
    """

    def __init__(self, document_id: str, status: str, error: Optional[str] = None):
        self.document_id = document_id
        self.status = status
        self.error = error
        super().__init__(
            f"Извлечение текста для документа {document_id} завершилось "
            f"статусом {status}: {error or 'неизвестная ошибка'}"
        )


class FailoverUnavailable(ExtractionError):
    """Серверная обработка не удалась, а локальная недоступна для категории."""

    def __init__(self, category: str, original: Exception):
        self.category = category
        self.original = original
        super().__init__(
            f"Локальное распознавание поддерживает только изображения, "
            f"документ имеет категорию {category}. Повторите обработку на сервере. "
            f"Исходная ошибка: {original}"
        )
