"""バイト数を人が読める単位付き文字列に変換する。"""

from __future__ import annotations

from typing import Union

SIZE_UNITS = ("B", "kB", "MB", "GB", "TB")


def format_file_size(size_in_bytes: Union[int, float]) -> str:
    """ファイルサイズを読みやすい形式に変換します

    1024 以上かつ上位の単位が残っている間だけ割り進める。TB より上は無いので
    TB のまま 1024 以上の値も表示する。

    Args:
        size_in_bytes: バイト単位のサイズ（0以上）

    Returns:
        str: 小数2桁固定の文字列（例: "1.50 kB"）

    Raises:
        ValueError: 負の値が渡された場合
    """
    if size_in_bytes < 0:
        raise ValueError(f"size_in_bytes must be >= 0: {size_in_bytes}")

    size = float(size_in_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(SIZE_UNITS) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.2f} {SIZE_UNITS[unit_index]}"
