"""ログ設定。GUI も CLI も出力は loguru に集約する。

標準 logging で書かれたモジュールのレコードは ``LoguruBridge`` 経由で loguru に
流れる。ファイルのローテーションと古いログの削除は loguru に任せる。
"""

from __future__ import annotations

import inspect
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Mapping, Optional

from loguru import logger as loguru_logger

APP_NAME = "Shukusho"
LOG_FILENAME = "shukusho.log"
RUN_SUMMARY_FILENAME = "last_run_summary.json"
LOG_ROTATION = "1 day"
LOG_RETENTION = "30 days"

_CONSOLE_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>: <white>{message}</white>"
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def get_default_log_dir(
    app_name: str = APP_NAME,
    *,
    os_name: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """OSごとの標準ログディレクトリ（Windows は LOCALAPPDATA、他は XDG_STATE_HOME）。"""
    env = os.environ if env is None else env
    home = home or Path.home()
    if (os_name or os.name) == "nt":
        base = env.get("LOCALAPPDATA") or env.get("APPDATA")
        return Path(base) / app_name / "logs" if base else home / f".{app_name.lower()}" / "logs"
    state_home = Path(env["XDG_STATE_HOME"]) if env.get("XDG_STATE_HOME") else home / ".local" / "state"
    return state_home / app_name.lower() / "logs"


def write_run_summary(summary_path: Path, payload: dict[str, Any]) -> None:
    """summary JSON をアトミックに保存する。"""
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = summary_path.with_suffix(f"{summary_path.suffix}.tmp")
    with tmp_path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, ensure_ascii=False, indent=2)
    tmp_path.replace(summary_path)


class LoguruBridge(logging.Handler):
    """標準 logging のレコードを loguru に流す。"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: Any = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # logging 内部のフレームを抜けた最初の呼び出し元まで遡る
        frame, depth = inspect.currentframe(), 0
        while frame is not None:
            filename = frame.f_code.co_filename
            is_logging = filename == logging.__file__
            is_frozen = "importlib" in filename and "_bootstrap" in filename
            if depth > 0 and not (is_logging or is_frozen):
                break
            frame = frame.f_back
            depth += 1

        loguru_logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(console_level: str = "INFO", file_level: str = "DEBUG", log_file: Optional[Path] = None) -> None:
    """ロギング設定を行います

    stderr が無い環境（pythonw で起動した GUI など）ではコンソール出力を省く。
    """
    loguru_logger.remove()  # デフォルト設定を削除
    if sys.stderr is not None:
        loguru_logger.add(sys.stderr, format=_CONSOLE_FORMAT, colorize=True, level=console_level)
    if log_file is not None:
        loguru_logger.add(
            str(log_file),
            format=_FILE_FORMAT,
            rotation=LOG_ROTATION,
            retention=LOG_RETENTION,
            encoding="utf-8",
            level=file_level,
        )
    logging.basicConfig(handlers=[LoguruBridge()], level=0, force=True)
