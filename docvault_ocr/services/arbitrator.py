"""
Арбитр уверенности — многопроходное распознавание по списку языков.

Качество распознавания сильно зависит от языковой модели и шума
в документе. Арбитр прогоняет несколько дешёвых альтернатив и оставляет
лучший результат:

    1. Кандидаты: [основной язык]; список расширяется резервными языками
       в расширенном режиме или если первый проход пуст / малоуверен
    2. Каждый кандидат — новый одноразовый движок, один прогон
    3. Лучший результат: выше уверенность, либо заметно длиннее текст
       при допустимо меньшей уверенности
    4. Ранний выход перед каждым не первым кандидатом, если уверенность высока
    5. Ничего не найдено — последняя попытка с базовой конфигурацией,
       затем заглушка с уверенностью 0 (это не ошибка)
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from docvault_ocr.config import Settings
from docvault_ocr.errors import EngineInitFailure, PermanentFailure
from docvault_ocr.schemas import ArbitrationResult, EngineResult
from docvault_ocr.services.engine import EngineConfig, TesseractEngine

logger = logging.getLogger(__name__)

NO_TEXT_PLACEHOLDER = (
    "[Не удалось извлечь текст из документа. Возможно, он содержит рукописный "
    "текст, изображения без текста или скан низкого качества.]"
)


@dataclass(frozen=True)
class ArbitrationPolicy:
    """
    Эмпирические пороги арбитража (настраиваемые).

    Attributes:
        fallback_languages: резервные языки в обычном режиме
        advanced_fallback_languages: резервные языки в расширенном режиме
        base_language: язык последней попытки с базовой конфигурацией
        low_confidence_threshold: ниже — первый проход считается слабым
        early_exit_confidence: выше — дальнейшие языки не пробуются
        length_multiplier: во сколько раз текст должен быть длиннее
        confidence_multiplier: доля уверенности лучшего, допустимая для длинного текста
    """

    fallback_languages: tuple[str, ...] = ("eng",)
    advanced_fallback_languages: tuple[str, ...] = ("eng", "deu", "fra", "spa", "ita")
    base_language: str = "eng"
    low_confidence_threshold: float = 40.0
    early_exit_confidence: float = 75.0
    length_multiplier: float = 1.2
    confidence_multiplier: float = 0.8

    @classmethod
    def from_settings(cls, settings: Settings) -> "ArbitrationPolicy":
        return cls(
            fallback_languages=tuple(settings.fallback_languages),
            advanced_fallback_languages=tuple(settings.advanced_fallback_languages),
            base_language=settings.base_language,
            low_confidence_threshold=settings.low_confidence_threshold,
            early_exit_confidence=settings.early_exit_confidence,
            length_multiplier=settings.length_multiplier,
            confidence_multiplier=settings.confidence_multiplier,
        )

    def is_better(self, candidate: EngineResult, best: Optional[EngineResult]) -> bool:
        """
        Сравнивает непустой результат прохода с текущим лучшим.

        Лучше, если уверенность выше, либо текст длиннее в length_multiplier
        раз при уверенности выше confidence_multiplier от лучшей.
        """
        if best is None:
            return True
        if candidate.confidence > best.confidence:
            return True
        return (
            len(candidate.text) > len(best.text) * self.length_multiplier
            and candidate.confidence > best.confidence * self.confidence_multiplier
        )


@dataclass
class _Pass:
    language: str
    result: EngineResult


@dataclass
class _Attempts:
    best: Optional[_Pass] = None
    ran: list[str] = field(default_factory=list)


class MultiPassArbitrator:
    """
    Многопроходный арбитр поверх одноразовых движков.

    engine_factory вызывается для каждой попытки и должен возвращать
    новый движок с методами acquire/configure/run/release.
    """

    def __init__(
        self,
        engine_config: EngineConfig,
        policy: Optional[ArbitrationPolicy] = None,
        engine_factory: Optional[Callable[[], TesseractEngine]] = None,
    ):
        self.engine_config = engine_config
        self.policy = policy or ArbitrationPolicy()
        self.engine_factory = engine_factory or (lambda: TesseractEngine(engine_config))

    @classmethod
    def from_settings(cls, settings: Settings) -> "MultiPassArbitrator":
        return cls(EngineConfig.from_settings(settings), ArbitrationPolicy.from_settings(settings))

    def candidate_languages(self, primary: str, advanced_mode: bool) -> list[str]:
        """Основной язык плюс резервные без дубликатов, в исходном порядке."""
        fallbacks = (
            self.policy.advanced_fallback_languages
            if advanced_mode
            else self.policy.fallback_languages
        )
        candidates = [primary]
        for lang in fallbacks:
            if lang not in candidates:
                candidates.append(lang)
        return candidates

    def arbitrate(
        self,
        payload: bytes,
        language: str,
        advanced_mode: bool = False,
        quality_hint: int = 75,
    ) -> ArbitrationResult:
        """
        Выполняет многопроходное распознавание и выбирает лучший результат.

        Args:
            payload: байты изображения или сканированного PDF
            language: основной язык
            advanced_mode: расширенный режим (больше языков, предобработка)
            quality_hint: подсказка качества 1-100

        Returns:
            ArbitrationResult: лучший результат или заглушка

        Raises:
            PermanentFailure: ни одна попытка не смогла запуститься
        """
        start = time.perf_counter()
        dpi = self.engine_config.resolve_dpi(quality_hint, advanced_mode)
        candidates = self.candidate_languages(language, advanced_mode)
        attempts = _Attempts()
        failures: list[str] = []

        logger.info(
            f"Арбитраж: основной язык {language}, расширенный режим {advanced_mode}, dpi {dpi}"
        )

        for index, lang in enumerate(candidates):
            if index == 1 and not self._needs_fallbacks(attempts, advanced_mode):
                logger.info("   Первый проход достаточен, резервные языки не нужны")
                break
            if index > 0 and attempts.best and attempts.best.result.confidence > self.policy.early_exit_confidence:
                logger.info(
                    f"   Ранний выход: уверенность {attempts.best.result.confidence:.0f}% "
                    f"(язык {attempts.best.language})"
                )
                break

            self._attempt(attempts, failures, payload, lang, dpi, preprocess=advanced_mode)

        if attempts.best is None:
            # Последняя попытка: базовый язык, высокий DPI, без предобработки
            logger.warning("Ни один проход не дал текста, пробуем базовую конфигурацию")
            self._attempt(
                attempts,
                failures,
                payload,
                self.policy.base_language,
                self.engine_config.render_dpi_high,
                preprocess=False,
            )

        elapsed_ms = int((time.perf_counter() - start) * 1000)

        if attempts.best is None:
            if not attempts.ran:
                raise PermanentFailure(
                    "Распознавание не удалось ни для одного языка: " + "; ".join(failures)
                )
            logger.info(f"Арбитраж завершён без текста за {elapsed_ms}ms, возвращаем заглушку")
            return ArbitrationResult(
                text=NO_TEXT_PLACEHOLDER,
                confidence=0.0,
                page_count=1,
                languages_tried=attempts.ran,
                placeholder=True,
            )

        best = attempts.best
        logger.info(
            f"Арбитраж завершён за {elapsed_ms}ms: язык {best.language}, "
            f"уверенность {best.result.confidence:.0f}%, {len(best.result.text)} симв."
        )
        return ArbitrationResult(
            text=best.result.text,
            confidence=best.result.confidence,
            page_count=max(best.result.page_count, 1),
            language=best.language,
            languages_tried=attempts.ran,
        )

    def _needs_fallbacks(self, attempts: _Attempts, advanced_mode: bool) -> bool:
        if advanced_mode or attempts.best is None:
            return True
        return attempts.best.result.confidence < self.policy.low_confidence_threshold

    def _attempt(
        self,
        attempts: _Attempts,
        failures: list[str],
        payload: bytes,
        language: str,
        dpi: int,
        preprocess: bool,
    ) -> None:
        engine = self.engine_factory()
        try:
            engine.acquire()
            engine.configure(language, dpi=dpi, preprocess=preprocess)
            result = engine.run(payload)
        except EngineInitFailure as e:
            logger.warning(f"   Проход {language} пропущен: {e}")
            failures.append(f"{language}: {e}")
            return
        finally:
            engine.release()

        attempts.ran.append(language)

        if not result.text.strip():
            return

        current = attempts.best.result if attempts.best else None
        if self.policy.is_better(result, current):
            attempts.best = _Pass(language=language, result=result)
            logger.info(
                f"   Лучший результат: {language}, уверенность {result.confidence:.0f}%, "
                f"{len(result.text)} симв."
            )
