"""画像のエンコード、サイズ見積もり、書き出しを扱うパイプライン。

出力形式は PNG（ロスレス）と JPEG（固定品質）の2種類。JPEG 品質は
``JPEG_QUALITY`` の設計定数で、ユーザー設定にはしていない。
"""

from __future__ import annotations

import base64
import enum
import io
import logging
import math
import os
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from PIL import Image

from shukusho_resizer.errors import ExportFailure, analyze_file_error

logger = logging.getLogger(__name__)

JPEG_QUALITY = 0.9
PNG_COMPRESS_LEVEL = 6
_BASE64_HEADER_SEPARATOR = ","


class OutputFormat(str, enum.Enum):
    PNG = "png"
    JPEG = "jpeg"

    @property
    def mime_type(self) -> str:
        return "image/png" if self is OutputFormat.PNG else "image/jpeg"

    @property
    def extension(self) -> str:
        return "png" if self is OutputFormat.PNG else "jpg"

    @property
    def is_lossless(self) -> bool:
        return self is OutputFormat.PNG

    @classmethod
    def parse(cls, value: Union[str, "OutputFormat"]) -> "OutputFormat":
        if isinstance(value, OutputFormat):
            return value
        normalized = str(value).strip().lower()
        if normalized == "jpg":
            normalized = "jpeg"
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"unsupported output format: {value!r}") from None


@dataclass(frozen=True)
class EncodedImage:
    data: bytes
    estimated_byte_size: int
    output_format: OutputFormat
    width: int
    height: int


def quality_to_pillow(quality: float) -> int:
    """0.0-1.0 の品質を Pillow の 1-95 に変換する。"""
    if not 0.0 <= quality <= 1.0:
        raise ValueError(f"quality must be within [0, 1]: {quality}")
    return max(1, min(95, int(round(quality * 100))))


def build_encoder_save_kwargs(output_format: OutputFormat, quality: Optional[float] = None) -> Dict[str, Any]:
    """出力形式に応じたエンコーダ設定を返す。"""
    if output_format is OutputFormat.PNG:
        # PNGはロスレス。qualityは受け付けない。
        return {"format": "PNG", "optimize": False, "compress_level": PNG_COMPRESS_LEVEL}
    return {
        "format": "JPEG",
        "quality": quality_to_pillow(JPEG_QUALITY if quality is None else quality),
        "optimize": False,
        "progressive": False,
    }


def _prepare_for_format(bitmap: Image.Image, output_format: OutputFormat) -> Image.Image:
    if output_format is OutputFormat.JPEG and bitmap.mode in {"RGBA", "LA", "P"}:
        # 透過を持つ画像は白背景へ合成して保存する
        rgba = bitmap.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        background.alpha_composite(rgba)
        return background.convert("RGB")
    if output_format is OutputFormat.JPEG and bitmap.mode not in {"RGB", "L"}:
        return bitmap.convert("RGB")
    return bitmap


def encode_bytes(bitmap: Image.Image, output_format: OutputFormat, quality: Optional[float] = None) -> bytes:
    if output_format is OutputFormat.PNG and quality is not None:
        raise ValueError("PNG is lossless and takes no quality")
    save_img = _prepare_for_format(bitmap, output_format)
    buffer = io.BytesIO()
    save_img.save(buffer, **build_encoder_save_kwargs(output_format, quality))
    return buffer.getvalue()


def to_data_url(data: bytes, output_format: OutputFormat) -> str:
    """``data:<mime>;base64,...`` 形式の文字列を作る。"""
    payload = base64.b64encode(data).decode("ascii")
    return f"data:{output_format.mime_type};base64{_BASE64_HEADER_SEPARATOR}{payload}"


def estimate_size_from_base64(text: str) -> int:
    """base64 文字列（data URL 可）から元のバイト数を求める。

    4文字が3バイトに対応し、末尾の ``=`` が 0〜2 個あるので近似ではなく
    正確に復元できる。
    """
    header_end = text.find(_BASE64_HEADER_SEPARATOR)
    body = text[header_end + 1 :] if header_end != -1 else text
    if body.endswith("=="):
        padding = 2
    elif body.endswith("="):
        padding = 1
    else:
        padding = 0
    return math.floor(len(body) * 0.75) - padding


def encode(bitmap: Image.Image, output_format: Union[OutputFormat, str], quality: Optional[float] = None) -> EncodedImage:
    """画像をエンコードし、テキスト表現からサイズを見積もる。"""
    fmt = OutputFormat.parse(output_format)
    data = encode_bytes(bitmap, fmt, quality)
    estimated = estimate_size_from_base64(to_data_url(data, fmt))
    logger.debug("encode %s %dx%d -> %d bytes", fmt.value, bitmap.width, bitmap.height, estimated)
    return EncodedImage(
        data=data,
        estimated_byte_size=estimated,
        output_format=fmt,
        width=bitmap.width,
        height=bitmap.height,
    )


def export_filename(original_name: str, width: int, height: int, output_format: Union[OutputFormat, str]) -> str:
    """``<元の名前>_(<幅>x<高さ>)_resized.<拡張子>`` を返す。"""
    fmt = OutputFormat.parse(output_format)
    return f"{original_name}_({width}x{height})_resized.{fmt.extension}"


def _build_temp_save_path(target_path: Path) -> Path:
    """同一ディレクトリ内の一時保存パスを作る。"""
    base_name = target_path.name or "shukusho_output"
    token = f"{os.getpid()}_{time.time_ns()}_{uuid.uuid4().hex[:10]}"
    return target_path.with_name(f".{base_name}.{token}.tmp")


def save_export(encoded: EncodedImage, output_path: Union[str, Path]) -> Path:
    """エンコード済みバイト列を一時ファイル→置換で保存する。

    Raises:
        ExportFailure: 書き込みに失敗した場合
    """
    final_path = Path(output_path)
    tmp_path = _build_temp_save_path(final_path)
    try:
        tmp_path.write_bytes(encoded.data)
        os.replace(str(tmp_path), str(final_path))
    except OSError as exc:
        info = analyze_file_error(exc)
        logger.error("export failed (%s): %s", info.category, final_path)
        raise ExportFailure(str(exc), info=info) from exc
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                logger.warning("一時保存ファイルの削除に失敗: %s", tmp_path)
    logger.info("exported %s (%d bytes)", final_path, len(encoded.data))
    return final_path
