"""
Предобработка страницы перед распознаванием (расширенный режим).

Этапы:
    - OSD: определение ориентации текста (Tesseract, 0/90/180/270)
    - Deskew: определение мелкого наклона текста (библиотека deskew)

Оптимизации:
    - Crop центральной части для OSD (убирает шум по краям скана)
    - Resize перед OSD и deskew (баланс скорость/точность)
    - Autocontrast для OSD
"""

import logging
from dataclasses import dataclass

import numpy as np
import pytesseract
from deskew import determine_skew
from PIL import Image, ImageOps

from docvault_ocr.schemas import PageOrientation, PageSkew

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreprocessOptions:
    """
    Параметры предобработки.

    Attributes:
        osd_crop_percent: доля, обрезаемая с каждого края для OSD
        osd_resize_px: размер длинной стороны для OSD
        osd_confidence_threshold: минимальная уверенность OSD для поворота
        deskew_resize_px: размер длинной стороны для deskew
        deskew_num_peaks: num_peaks для determine_skew
        skew_threshold: минимальный угол, при котором выполняется коррекция
    """

    osd_crop_percent: float = 0.15
    osd_resize_px: int = 2048
    osd_confidence_threshold: float = 2.0
    deskew_resize_px: int = 1200
    deskew_num_peaks: int = 20
    skew_threshold: float = 0.5


def detect_orientation(img: Image.Image, options: PreprocessOptions) -> PageOrientation:
    """
    Определяет ориентацию текста через Tesseract OSD.

    Выполняет:
        1. Crop центральной части (убирает черные полосы сканера)
        2. Resize до osd_resize_px
        3. Grayscale + autocontrast
        4. Tesseract OSD (--psm 0)

    Args:
        img: изображение страницы
        options: параметры предобработки

    Returns:
        PageOrientation: угол поворота и уверенность
    """
    w, h = img.size
    crop = options.osd_crop_percent
    work_img = img.crop((int(w * crop), int(h * crop), int(w * (1 - crop)), int(h * (1 - crop))))
    work_img.thumbnail((options.osd_resize_px, options.osd_resize_px))
    work_img = ImageOps.autocontrast(work_img.convert("L"))

    try:
        osd = pytesseract.image_to_osd(
            work_img,
            config="--psm 0",
            output_type=pytesseract.Output.DICT,
        )
        rotate = int(osd["rotate"])
        conf = float(osd["orientation_conf"])
    except pytesseract.TesseractError:
        # Мало текста или только картинки — OSD не определяет ориентацию
        rotate = 0
        conf = 0.0

    return PageOrientation(
        rotate=rotate,
        confidence=conf,
        needs_rotation=rotate != 0 and conf >= options.osd_confidence_threshold,
    )


def apply_rotation(img: Image.Image, rotation: int) -> Image.Image:
    """
    Применяет ОБРАТНЫЙ поворот для коррекции ориентации.

    OSD возвращает угол, на который текст ПОВЁРНУТ. PIL ROTATE_90 —
    против часовой, поэтому rotate=90 исправляется через ROTATE_270.

    Args:
        img: исходное изображение
        rotation: угол поворота от OSD (0, 90, 180, 270)

    Returns:
        Image.Image: изображение с исправленной ориентацией
    """
    if rotation == 0:
        return img
    if rotation == 90:
        return img.transpose(Image.Transpose.ROTATE_270)
    if rotation == 180:
        return img.transpose(Image.Transpose.ROTATE_180)
    if rotation == 270:
        return img.transpose(Image.Transpose.ROTATE_90)
    return img.rotate(-rotation, expand=True, fillcolor="white")


def detect_skew(img: Image.Image, options: PreprocessOptions) -> PageSkew:
    """
    Определяет угол наклона текста (проекционный профиль).

    Args:
        img: изображение страницы
        options: параметры предобработки

    Returns:
        PageSkew: угол наклона и флаг необходимости коррекции
    """
    # На больших изображениях алгоритм захлебывается, на маленьких теряет точность
    w, h = img.size
    ratio = options.deskew_resize_px / max(w, h)
    small_img = img.resize((max(1, int(w * ratio)), max(1, int(h * ratio))), Image.Resampling.BILINEAR)
    img_array = np.array(small_img.convert("L"))

    try:
        angle = determine_skew(img_array, num_peaks=options.deskew_num_peaks)
    except (ValueError, IndexError):
        angle = None

    angle = float(angle) if angle is not None else 0.0

    return PageSkew(angle=angle, needs_deskew=abs(angle) > options.skew_threshold)


def apply_deskew(img: Image.Image, angle: float, threshold: float) -> Image.Image:
    """
    Поворачивает изображение на -angle, компенсируя наклон.

    Args:
        img: исходное изображение
        angle: угол наклона в градусах
        threshold: минимальный угол коррекции

    Returns:
        Image.Image: скорректированное изображение
    """
    if abs(angle) <= threshold:
        return img

    # expand=True чтобы не обрезать углы, новые области заливаются белым
    return img.rotate(
        -angle,
        resample=Image.Resampling.BICUBIC,
        expand=True,
        fillcolor="white",
    )


def preprocess_page(img: Image.Image, options: PreprocessOptions) -> Image.Image:
    """
    Полная предобработка страницы: ориентация, затем наклон.

    Args:
        img: изображение страницы
        options: параметры предобработки

    Returns:
        Image.Image: изображение, готовое к распознаванию
    """
    orientation = detect_orientation(img, options)
    if orientation.needs_rotation:
        logger.info(f"        Поворот: {orientation.rotate} (уверенность {orientation.confidence:.1f})")
        img = apply_rotation(img, orientation.rotate)

    skew = detect_skew(img, options)
    if skew.needs_deskew:
        logger.info(f"        Наклон: {skew.angle:.1f}")
        img = apply_deskew(img, skew.angle, options.skew_threshold)

    return img
