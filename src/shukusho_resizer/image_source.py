"""Input channel helpers: file picker, drag-and-drop and clipboard payloads.

All three channels are normalized to an :class:`ImageBlob` (bytes + name +
MIME type) and decoded through the same path into a :class:`SourceImage`.
"""

from __future__ import annotations

import io
import logging
import mimetypes
import os
import tkinter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union
from urllib.parse import unquote, urlparse

from PIL import Image, ImageOps, UnidentifiedImageError

from shukusho_resizer.errors import DecodeFailure, UnsupportedMediaType

logger = logging.getLogger(__name__)

CLIPBOARD_DISPLAY_NAME = "clipboard.png"
SELECTABLE_INPUT_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".bmp", ".gif", ".tif", ".tiff")

_tcl_interpreter: Optional[tkinter.Tk] = None


@dataclass(frozen=True)
class FileBytes:
    """ファイル選択ダイアログから得た1ファイル分のデータ。"""

    data: bytes
    name: str
    mime_type: Optional[str] = None

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "FileBytes":
        file_path = Path(path)
        return cls(data=file_path.read_bytes(), name=file_path.name, mime_type=guess_mime_type(file_path.name))


@dataclass(frozen=True)
class DropPayload:
    """tkinterdnd2 の ``<<Drop>>`` イベントが渡す生データ。"""

    raw_data: str
    splitlist: Optional[Callable[[str], Sequence[str]]] = None


@dataclass(frozen=True)
class ClipboardPayload:
    """クリップボードの中身。画像・ファイルパス列・生バイト列のいずれか。"""

    image: Optional[Image.Image] = None
    paths: Tuple[Path, ...] = ()
    data: Optional[bytes] = None
    mime_type: Optional[str] = None


InputPayload = Union[FileBytes, DropPayload, ClipboardPayload]


@dataclass(frozen=True)
class ImageBlob:
    data: bytes
    name: str
    mime_type: Optional[str]


@dataclass(frozen=True)
class SourceImage:
    """読み込み済みの元画像。新しい入力で丸ごと置き換え、変更はしない。"""

    original_byte_size: int
    natural_width: int
    natural_height: int
    display_name: str
    bitmap: Image.Image = field(repr=False, compare=False)
    mime_type: Optional[str] = None

    @property
    def aspect_ratio(self) -> float:
        return self.natural_width / self.natural_height

    def close(self) -> None:
        self.bitmap.close()


def guess_mime_type(name: str) -> Optional[str]:
    mime_type, _encoding = mimetypes.guess_type(name)
    if mime_type is None and Path(name).suffix.lower() == ".webp":
        return "image/webp"
    return mime_type


def is_image_mime_type(mime_type: Optional[str]) -> bool:
    return bool(mime_type) and str(mime_type).lower().startswith("image/")


def normalize_dropped_path_text(value: str) -> str:
    text = value.strip()
    if not text:
        return ""
    if text.startswith("file://"):
        parsed = urlparse(text)
        if parsed.scheme == "file":
            normalized = unquote(parsed.path or "")
            if parsed.netloc and parsed.netloc.lower() != "localhost":
                normalized = f"//{parsed.netloc}{normalized}"
            if os.name == "nt" and len(normalized) >= 3 and normalized[0] == "/" and normalized[2] == ":":
                normalized = normalized[1:]
            if normalized:
                text = normalized
    return text


def _default_splitlist(data: str) -> Sequence[str]:
    """GUI 外（CLI・テスト）では Tcl インタープリターだけを起動して分割する。"""
    global _tcl_interpreter
    if _tcl_interpreter is None:
        _tcl_interpreter = tkinter.Tcl()
    return _tcl_interpreter.tk.splitlist(data)


def dedupe_paths(paths: List[Path]) -> List[Path]:
    seen: set[str] = set()
    deduped: List[Path] = []
    for path in paths:
        marker = str(path).lower()
        if marker in seen:
            continue
        seen.add(marker)
        deduped.append(path)
    return deduped


def parse_drop_paths(payload: DropPayload) -> List[Path]:
    data = str(payload.raw_data or "").strip()
    if not data:
        return []
    splitter = payload.splitlist or _default_splitlist
    try:
        raw_items = list(splitter(data))
    except Exception:
        logger.debug("splitlist failed, falling back to whole drop text: %r", data)
        raw_items = [data]

    expanded_items: List[str] = []
    for item in raw_items:
        text = str(item)
        if "\n" in text:
            expanded_items.extend(line for line in text.splitlines() if line.strip())
        else:
            expanded_items.append(text)

    paths: List[Path] = []
    for item in expanded_items:
        text = str(item).strip()
        if text.startswith("{") and text.endswith("}"):
            text = text[1:-1]
        text = text.strip().strip('"')
        text = normalize_dropped_path_text(text)
        if text:
            paths.append(Path(text))
    return dedupe_paths(paths)


def _blob_from_path(path: Path) -> ImageBlob:
    if not path.is_file():
        raise UnsupportedMediaType(f"not a file: {path}")
    mime_type = guess_mime_type(path.name)
    if mime_type is not None and not is_image_mime_type(mime_type):
        raise UnsupportedMediaType(f"not an image: {path.name}", mime_type=mime_type)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise UnsupportedMediaType(f"cannot read {path}: {exc}") from exc
    return ImageBlob(data=data, name=path.name, mime_type=mime_type)


def _png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class ImageSource:
    """3つの入力経路を1つのデコード経路にまとめる。"""

    def to_blob(self, payload: InputPayload) -> ImageBlob:
        """ペイロードから最初の1件を取り出し、画像かどうかを確認する。

        Raises:
            UnsupportedMediaType: 画像データではない場合
        """
        if isinstance(payload, FileBytes):
            mime_type = payload.mime_type or guess_mime_type(payload.name)
            blob = ImageBlob(data=payload.data, name=payload.name, mime_type=mime_type)
        elif isinstance(payload, DropPayload):
            paths = parse_drop_paths(payload)
            if not paths:
                raise UnsupportedMediaType("drop payload contains no paths")
            if len(paths) > 1:
                logger.info("Multiple items dropped, using the first: %s", paths[0])
            blob = _blob_from_path(paths[0])
        elif isinstance(payload, ClipboardPayload):
            blob = self._clipboard_blob(payload)
        else:
            raise UnsupportedMediaType(f"unknown payload type: {type(payload).__name__}")

        return self._checked(blob)

    def decode(self, blob: ImageBlob) -> SourceImage:
        """画像をデコードして SourceImage を返す。

        Raises:
            DecodeFailure: 画像として認識できたがピクセルを読めなかった場合
        """
        try:
            with Image.open(io.BytesIO(blob.data)) as opened:
                opened.load()
                bitmap = ImageOps.exif_transpose(opened)
                if bitmap is opened:
                    bitmap = opened.copy()
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise DecodeFailure(f"{blob.name}: {exc}") from exc

        if bitmap.mode not in ("RGB", "RGBA"):
            has_alpha = "A" in bitmap.getbands() or "transparency" in bitmap.info
            bitmap = bitmap.convert("RGBA" if has_alpha else "RGB")

        width, height = bitmap.size
        if width <= 0 or height <= 0:
            raise DecodeFailure(f"{blob.name}: empty image")

        logger.debug("decoded %s: %dx%d mode=%s", blob.name, width, height, bitmap.mode)
        return SourceImage(
            original_byte_size=len(blob.data),
            natural_width=width,
            natural_height=height,
            display_name=blob.name,
            bitmap=bitmap,
            mime_type=blob.mime_type,
        )

    def acquire(self, payload: InputPayload) -> SourceImage:
        """同期的に取得とデコードを行う（CLIやテスト向け）。"""
        return self.decode(self.to_blob(payload))

    def _clipboard_blob(self, payload: ClipboardPayload) -> ImageBlob:
        if payload.image is not None:
            return ImageBlob(data=_png_bytes(payload.image), name=CLIPBOARD_DISPLAY_NAME, mime_type="image/png")
        if payload.data is not None:
            mime_type = payload.mime_type
            if mime_type is not None and not is_image_mime_type(mime_type):
                raise UnsupportedMediaType("clipboard does not hold image data", mime_type=mime_type)
            extension = mimetypes.guess_extension(mime_type or "") or ".png"
            return ImageBlob(data=payload.data, name=f"clipboard{extension}", mime_type=mime_type)
        if payload.paths:
            return _blob_from_path(Path(payload.paths[0]))
        raise UnsupportedMediaType("clipboard is empty")

    @staticmethod
    def _checked(blob: ImageBlob) -> ImageBlob:
        if blob.mime_type is not None and not is_image_mime_type(blob.mime_type):
            raise UnsupportedMediaType(f"not an image: {blob.name}", mime_type=blob.mime_type)
        if not blob.data:
            raise UnsupportedMediaType(f"empty payload: {blob.name}")
        # ヘッダーだけ読んで画像か判定する
        try:
            with Image.open(io.BytesIO(blob.data)) as probe:
                detected = Image.MIME.get(probe.format or "")
        except UnidentifiedImageError as exc:
            raise UnsupportedMediaType(f"not an image: {blob.name}", mime_type=blob.mime_type) from exc
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise DecodeFailure(f"{blob.name}: {exc}") from exc
        if blob.mime_type is None and detected:
            return ImageBlob(data=blob.data, name=blob.name, mime_type=detected)
        return blob
