"""
エラー分類とユーザー向けメッセージのためのユーティリティモジュール
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


class ShukushoError(Exception):
    """アプリ内で扱う全エラーの基底クラス"""


class UnsupportedMediaType(ShukushoError):
    """画像ではないペイロードが渡された"""

    def __init__(self, message: str, *, mime_type: Optional[str] = None) -> None:
        super().__init__(message)
        self.mime_type = mime_type


class DecodeFailure(ShukushoError):
    """画像として認識できたがデコードに失敗した"""


class ClipboardUnavailable(ShukushoError):
    """クリップボードの読み書きが拒否された、または未対応"""


class InvalidTargetSize(ShukushoError):
    """目標幅が [1, 元画像の幅] の範囲外"""

    def __init__(self, target_width: int, max_width: int) -> None:
        super().__init__(f"target width {target_width} is outside [1, {max_width}]")
        self.target_width = target_width
        self.max_width = max_width


class ExportFailure(ShukushoError):
    """書き出し先への保存に失敗した"""

    def __init__(self, message: str, *, info: "FileErrorInfo") -> None:
        super().__init__(message)
        self.info = info


@dataclass(frozen=True)
class FileErrorInfo:
    error_code: Optional[int]
    category: str
    guidance: str


_NO_SPACE_CODES = {28, 112, 122}
_PERMISSION_CODES = {5, 13, 30}
_PATH_INVALID_CODES = {36, 123, 206}


def analyze_file_error(error: BaseException) -> FileErrorInfo:
    """ファイル保存に使えるエラー分類を返す。"""
    if not isinstance(error, OSError):
        return FileErrorInfo(None, "unknown", "再試行しても解決しない場合は保存先を変更してください。")

    code = getattr(error, "winerror", None) if os.name == "nt" else None
    if code is None:
        code = error.errno if isinstance(error.errno, int) else None

    if isinstance(error, PermissionError) or code in _PERMISSION_CODES:
        return FileErrorInfo(code, "permission_denied", "保存先の書き込み権限を確認してください。")
    if code in _NO_SPACE_CODES:
        return FileErrorInfo(code, "no_space", "保存先の空き容量不足が疑われます。空き容量を確認してください。")
    if isinstance(error, FileNotFoundError):
        return FileErrorInfo(code, "not_found", "保存先フォルダが見つかりません。保存先を確認してください。")
    if code in _PATH_INVALID_CODES:
        return FileErrorInfo(code, "path_invalid", "ファイル名・パスが長すぎるか、使用できない文字が含まれています。")
    return FileErrorInfo(code, "unknown", "再試行しても解決しない場合は保存先を変更してください。")


def user_message(error: BaseException) -> str:
    """例外から画面表示用の日本語メッセージを生成します"""
    if isinstance(error, UnsupportedMediaType):
        return "画像ファイルではないため読み込めません。"
    if isinstance(error, DecodeFailure):
        return f"画像のデコードに失敗しました: {error}"
    if isinstance(error, ClipboardUnavailable):
        return f"クリップボードを利用できません: {error}"
    if isinstance(error, InvalidTargetSize):
        return f"幅は 1〜{error.max_width} px の範囲で指定してください。"
    if isinstance(error, ExportFailure):
        return f"保存に失敗しました: {error}\n{error.info.guidance}"
    return f"{type(error).__name__}: {error}"
