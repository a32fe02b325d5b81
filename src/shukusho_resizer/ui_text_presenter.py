"""Pure text builders for GUI labels."""

from __future__ import annotations

from typing import Optional

from shukusho_resizer.size_format import format_file_size

WINDOW_TITLE = "画像の縮小化"
HEADER_TEXT = "画像リサイズ"


def build_dimensions_text(width: int, height: int) -> str:
    return f"画像サイズ：[{width} x {height}]"


def build_source_info_text(*, byte_size: int, width: int, height: int) -> str:
    """Build the pre-resize info line."""
    return f"ファイルサイズ：{format_file_size(byte_size)}  {build_dimensions_text(width, height)}"


def build_result_info_text(*, estimated_byte_size: Optional[int], width: int, height: int) -> str:
    """Build the post-resize info line; size appears only after a commit."""
    dimensions = build_dimensions_text(width, height)
    if estimated_byte_size is None:
        return dimensions
    return f"ファイルサイズ：{format_file_size(estimated_byte_size)}  {dimensions}"


def build_empty_state_text(*, drag_drop_enabled: bool, paste_shortcut: str = "Ctrl+V") -> str:
    lines = ["画像を選択"]
    if drag_drop_enabled:
        lines.append("ここへドラッグ&ドロップ")
    lines.append(f"{paste_shortcut} で貼り付け")
    return "\n".join(lines)


def build_copy_done_text(*, format_label: str, width: int, height: int) -> str:
    return f"{format_label} [{width} x {height}] をクリップボードにコピーしました"


def build_export_done_text(*, filename: str) -> str:
    return f"保存しました: {filename}"
