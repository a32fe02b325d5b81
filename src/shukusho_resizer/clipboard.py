"""System clipboard access for image paste and copy.

Reading goes through ``PIL.ImageGrab.grabclipboard``. Writing puts the encoded
bytes on the clipboard under their MIME type using the platform's own
mechanism (Win32 registered formats, ``osascript``, ``wl-copy``/``xclip``).
Every failure surfaces as :class:`ClipboardUnavailable`.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Optional, Protocol

from PIL import Image, ImageGrab

from shukusho_resizer.errors import ClipboardUnavailable
from shukusho_resizer.image_source import ClipboardPayload

logger = logging.getLogger(__name__)

_COMMAND_TIMEOUT_SEC = 5
_WINDOWS_FORMAT_NAMES = {"image/png": "PNG", "image/jpeg": "JFIF"}
_MAC_CLASS_CODES = {"image/png": "PNGf", "image/jpeg": "JPEG"}


class ClipboardBackend(Protocol):
    def read(self) -> ClipboardPayload: ...

    def write(self, data: bytes, mime_type: str) -> None: ...


class SystemClipboard:
    """OSのクリップボードを使う実装。"""

    def __init__(self, platform: Optional[str] = None) -> None:
        self._platform = platform or sys.platform

    def read(self) -> ClipboardPayload:
        try:
            content = ImageGrab.grabclipboard()
        except (NotImplementedError, OSError, subprocess.SubprocessError) as exc:
            raise ClipboardUnavailable(str(exc)) from exc

        if isinstance(content, Image.Image):
            return ClipboardPayload(image=content)
        if isinstance(content, list):
            return ClipboardPayload(paths=tuple(Path(str(item)) for item in content))
        return ClipboardPayload()

    def write(self, data: bytes, mime_type: str) -> None:
        if not data:
            raise ClipboardUnavailable("nothing to copy")
        if self._platform.startswith("win"):
            _write_windows(data, mime_type)
        elif self._platform == "darwin":
            _write_macos(data, mime_type)
        else:
            _write_unix(data, mime_type)
        logger.info("copied %d bytes (%s) to clipboard", len(data), mime_type)


def _run(command: list[str], *, data: Optional[bytes] = None) -> None:
    try:
        subprocess.run(command, input=data, check=True, capture_output=True, timeout=_COMMAND_TIMEOUT_SEC)
    except (OSError, subprocess.SubprocessError) as exc:
        raise ClipboardUnavailable(f"{command[0]}: {exc}") from exc


def _write_unix(data: bytes, mime_type: str) -> None:
    if os.environ.get("WAYLAND_DISPLAY") and shutil.which("wl-copy"):
        _run(["wl-copy", "--type", mime_type], data=data)
        return
    if shutil.which("xclip"):
        _run(["xclip", "-selection", "clipboard", "-t", mime_type, "-i"], data=data)
        return
    raise ClipboardUnavailable("wl-copy or xclip is required to copy images")


def _write_macos(data: bytes, mime_type: str) -> None:
    class_code = _MAC_CLASS_CODES.get(mime_type)
    if class_code is None:
        raise ClipboardUnavailable(f"unsupported clipboard type: {mime_type}")
    fd, tmp_name = tempfile.mkstemp(suffix=".img")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        script = f'set the clipboard to (read (POSIX file "{tmp_name}") as «class {class_code}»)'
        _run(["osascript", "-e", script])
    finally:
        try:
            os.unlink(tmp_name)
        except OSError:
            logger.warning("一時ファイルの削除に失敗: %s", tmp_name)


def _write_windows(data: bytes, mime_type: str) -> None:
    import ctypes
    from ctypes import wintypes

    format_name = _WINDOWS_FORMAT_NAMES.get(mime_type)
    if format_name is None:
        raise ClipboardUnavailable(f"unsupported clipboard type: {mime_type}")

    gmem_moveable = 0x0002
    user32 = ctypes.windll.user32
    kernel32 = ctypes.windll.kernel32
    kernel32.GlobalAlloc.argtypes = [wintypes.UINT, ctypes.c_size_t]
    kernel32.GlobalAlloc.restype = wintypes.HGLOBAL
    kernel32.GlobalLock.argtypes = [wintypes.HGLOBAL]
    kernel32.GlobalLock.restype = ctypes.c_void_p
    kernel32.GlobalUnlock.argtypes = [wintypes.HGLOBAL]
    kernel32.GlobalFree.argtypes = [wintypes.HGLOBAL]
    user32.OpenClipboard.argtypes = [wintypes.HWND]
    user32.SetClipboardData.argtypes = [wintypes.UINT, wintypes.HANDLE]
    user32.SetClipboardData.restype = wintypes.HANDLE
    user32.RegisterClipboardFormatW.argtypes = [wintypes.LPCWSTR]
    user32.RegisterClipboardFormatW.restype = wintypes.UINT

    clipboard_format = user32.RegisterClipboardFormatW(format_name)
    if not clipboard_format:
        raise ClipboardUnavailable(f"RegisterClipboardFormat failed: {format_name}")
    if not user32.OpenClipboard(None):
        raise ClipboardUnavailable("OpenClipboard failed")
    try:
        user32.EmptyClipboard()
        h_mem = kernel32.GlobalAlloc(gmem_moveable, len(data))
        if not h_mem:
            raise ClipboardUnavailable("GlobalAlloc failed")
        mem_ptr = kernel32.GlobalLock(h_mem)
        if not mem_ptr:
            kernel32.GlobalFree(h_mem)
            raise ClipboardUnavailable("GlobalLock failed")
        ctypes.memmove(mem_ptr, data, len(data))
        kernel32.GlobalUnlock(h_mem)
        # 成功時はメモリの所有権がシステムへ移る
        if not user32.SetClipboardData(clipboard_format, h_mem):
            kernel32.GlobalFree(h_mem)
            raise ClipboardUnavailable("SetClipboardData failed")
    finally:
        user32.CloseClipboard()
