"""Headless one-shot resize: ``shukusho-resize photo.jpg --width 800``."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

from shukusho_resizer.encoder import JPEG_QUALITY, OutputFormat, encode, export_filename, save_export
from shukusho_resizer.errors import ShukushoError, user_message
from shukusho_resizer.image_source import FileBytes, ImageSource
from shukusho_resizer.resampler import resample
from shukusho_resizer.runtime_logging import setup_logging
from shukusho_resizer.size_format import format_file_size


def _build_arg_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI use."""
    p = argparse.ArgumentParser(
        prog="shukusho-resize",
        description="画像1枚を指定幅に縮小し、PNG/JPEGで書き出す",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("input", help="入力画像ファイル")
    p.add_argument("-w", "--width", type=int, help="リサイズ後の幅(px)。省略時は元の幅")
    p.add_argument("-f", "--format", choices=["png", "jpeg"], default="png", help="出力形式")
    p.add_argument("-o", "--output", help="出力ファイル。省略時は入力と同じフォルダーに自動命名")
    p.add_argument("--dry-run", action="store_true", help="ファイルを出力せずにサイズだけ表示")
    p.add_argument("--verbose", "-v", action="count", default=0, help="詳細ログを増やす (重ね掛け可)")
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_arg_parser().parse_args(argv)

    console_level = "INFO"
    if args.verbose == 1:
        console_level = "DEBUG"
    elif args.verbose >= 2:
        console_level = "TRACE"
    setup_logging(console_level=console_level)

    input_path = Path(args.input)
    if not input_path.is_file():
        logger.error(f"入力ファイルが存在しません: {input_path}")
        return 1

    output_format = OutputFormat.parse(args.format)
    try:
        source = ImageSource().acquire(FileBytes.from_path(input_path))
        width = source.natural_width if args.width is None else args.width
        output = resample(source.bitmap, width, source.aspect_ratio)
        quality = JPEG_QUALITY if output_format is OutputFormat.JPEG else None
        encoded = encode(output, output_format, quality)
    except ShukushoError as e:
        logger.error(f"{input_path.name}: {user_message(e)}")
        return 1

    logger.info(
        f"{source.display_name}: {format_file_size(source.original_byte_size)} "
        f"[{source.natural_width} x {source.natural_height}] → "
        f"{format_file_size(encoded.estimated_byte_size)} [{encoded.width} x {encoded.height}]"
    )

    if args.dry_run:
        logger.info("ドライラン: ファイルは書き出していません")
        return 0

    if args.output:
        output_path = Path(args.output)
    else:
        output_path = input_path.parent / export_filename(source.display_name, encoded.width, encoded.height, output_format)
    try:
        save_export(encoded, output_path)
    except ShukushoError as e:
        logger.error(user_message(e))
        return 1

    logger.success(f"✔ {output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
