"""
Диспетчер извлечения — выбор стратегии по категории документа.

    structured-text -> текстовый слой (pdfplumber)
                       пустой слой -> документ считается сканом -> арбитр
    raster-image    -> арбитр (многопроходный OCR)
    иное            -> UnsupportedCategory
"""

import logging
from typing import Callable, Optional, Union

from docvault_ocr.errors import UnsupportedCategory
from docvault_ocr.schemas import (
    METHOD_NATIVE_TEXT,
    METHOD_OCR,
    METHOD_PLACEHOLDER,
    DocumentCategory,
    ExtractionOutcome,
    ExtractionSettings,
    NativeText,
)
from docvault_ocr.services.arbitrator import MultiPassArbitrator
from docvault_ocr.services.native_text import extract_native_text

logger = logging.getLogger(__name__)


class ExtractionDispatcher:
    """
    Выбирает между текстовым слоем и распознаванием.

    Attributes:
        arbitrator: многопроходный арбитр для OCR
        native_extractor: функция payload -> NativeText
        structured_confidence: фиксированная уверенность для текстового слоя
    """

    def __init__(
        self,
        arbitrator: MultiPassArbitrator,
        native_extractor: Optional[Callable[[bytes], NativeText]] = None,
        structured_confidence: float = 95.0,
    ):
        self.arbitrator = arbitrator
        self.native_extractor = native_extractor or extract_native_text
        self.structured_confidence = structured_confidence

    def dispatch(
        self,
        category: Union[DocumentCategory, str],
        payload: bytes,
        settings: ExtractionSettings,
    ) -> ExtractionOutcome:
        """
        Извлекает текст документа подходящей стратегией.

        Args:
            category: категория документа из хранилища
            payload: байты документа
            settings: настройки извлечения задачи

        Returns:
            ExtractionOutcome: текст, уверенность, количество страниц, способ

        Raises:
            UnsupportedCategory: для категории нет пути извлечения
        """
        try:
            category = DocumentCategory(category)
        except ValueError:
            raise UnsupportedCategory(category) from None

        if category is DocumentCategory.STRUCTURED_TEXT:
            native = self.native_extractor(payload)
            if native.text.strip():
                return ExtractionOutcome(
                    text=native.text,
                    confidence=self.structured_confidence,
                    page_count=native.page_count,
                    method=METHOD_NATIVE_TEXT,
                )

            logger.info("Текстовый слой пуст, документ обрабатывается как скан")
            outcome = self._recognize(payload, settings)
            # Количество страниц PDF известно точнее из текстового разбора
            outcome.page_count = max(native.page_count, outcome.page_count)
            return outcome

        return self._recognize(payload, settings)

    def _recognize(self, payload: bytes, settings: ExtractionSettings) -> ExtractionOutcome:
        result = self.arbitrator.arbitrate(
            payload,
            language=settings.language,
            advanced_mode=settings.advanced_mode,
            quality_hint=settings.quality_hint,
        )
        return ExtractionOutcome(
            text=result.text,
            confidence=result.confidence,
            page_count=result.page_count,
            method=METHOD_PLACEHOLDER if result.placeholder else METHOD_OCR,
        )
