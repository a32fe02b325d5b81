"""幅指定リサイズ（縦横比固定）。"""

from __future__ import annotations

import logging
import math

from PIL import Image

from shukusho_resizer.errors import InvalidTargetSize

logger = logging.getLogger(__name__)

RESAMPLE_FILTER = Image.Resampling.LANCZOS


def target_height(target_width: int, aspect_ratio: float) -> int:
    """幅と縦横比から高さを求める（四捨五入ではなく 0 方向へ切り捨て）。"""
    if aspect_ratio <= 0:
        raise ValueError(f"aspect_ratio must be > 0: {aspect_ratio}")
    return math.trunc(target_width / aspect_ratio)


def resample(bitmap: Image.Image, target_width: int, aspect_ratio: float) -> Image.Image:
    """``target_width`` に合わせて縮小した新しい画像を返す。

    範囲外の幅は丸めずに ``InvalidTargetSize`` とする。スライダー側で
    [1, 元画像の幅] に制限している前提。

    Raises:
        InvalidTargetSize: 幅が範囲外、または高さが 1px 未満になる場合
    """
    max_width = bitmap.width
    if not 1 <= target_width <= max_width:
        raise InvalidTargetSize(target_width, max_width)

    height = target_height(target_width, aspect_ratio)
    if height < 1:
        raise InvalidTargetSize(target_width, max_width)

    if (target_width, height) == bitmap.size:
        return bitmap.copy()

    logger.debug("resample %dx%d -> %dx%d", bitmap.width, bitmap.height, target_width, height)
    return bitmap.resize((target_width, height), RESAMPLE_FILTER)
