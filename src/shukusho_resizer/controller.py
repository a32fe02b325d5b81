"""画像取得 → リサイズ → エンコードをまとめる状態機械。

状態は EMPTY（未読込） / LOADED（読込済み・未確定） / RESIZED（確定済み）。
スライダー操作は目標幅だけを更新し、確定（ポインタ解放など）でのみ
リサンプルとエンコードを実行する。
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Tuple, Union

from PIL import Image

from shukusho_resizer.clipboard import ClipboardBackend, SystemClipboard
from shukusho_resizer.decode_session import DecodeCompletion, DecodeSession
from shukusho_resizer.encoder import (
    JPEG_QUALITY,
    EncodedImage,
    OutputFormat,
    encode,
    export_filename,
    save_export,
)
from shukusho_resizer.errors import InvalidTargetSize, ShukushoError, user_message
from shukusho_resizer.fit_renderer import PREVIEW_BOX_SIZE, render_actual, render_preview
from shukusho_resizer.image_source import ImageSource, InputPayload, SourceImage
from shukusho_resizer.resampler import resample, target_height
from shukusho_resizer.ui_text_presenter import build_copy_done_text, build_export_done_text

logger = logging.getLogger(__name__)


class ControllerState(str, enum.Enum):
    EMPTY = "empty"
    LOADED = "loaded"
    RESIZED = "resized"


@dataclass(frozen=True)
class ResizeResult:
    output_bitmap: Image.Image
    encoded: EncodedImage
    output_format: OutputFormat

    @property
    def encoded_byte_size_estimate(self) -> int:
        return self.encoded.estimated_byte_size

    @property
    def size(self) -> Tuple[int, int]:
        return self.output_bitmap.size


class ControllerView(Protocol):
    def show_preview(self, buffer: Optional[Image.Image]) -> None: ...

    def show_source_info(self, source: Optional[SourceImage]) -> None: ...

    def show_target(self, width: int, height: int, result: Optional[ResizeResult]) -> None: ...

    def show_message(self, text: str, *, level: str = "info") -> None: ...


class NullView:
    def show_preview(self, buffer: Optional[Image.Image]) -> None:
        return None

    def show_source_info(self, source: Optional[SourceImage]) -> None:
        return None

    def show_target(self, width: int, height: int, result: Optional[ResizeResult]) -> None:
        return None

    def show_message(self, text: str, *, level: str = "info") -> None:
        return None


class InteractionController:
    def __init__(
        self,
        *,
        view: Optional[ControllerView] = None,
        image_source: Optional[ImageSource] = None,
        decode_session: Optional[DecodeSession] = None,
        clipboard: Optional[ClipboardBackend] = None,
        output_format: Union[OutputFormat, str] = OutputFormat.PNG,
        jpeg_quality: float = JPEG_QUALITY,
        preview_box: Tuple[int, int] = PREVIEW_BOX_SIZE,
    ) -> None:
        self._view: ControllerView = view or NullView()
        self._image_source = image_source or ImageSource()
        self._decode_session = decode_session or DecodeSession(self._image_source)
        self._clipboard: ClipboardBackend = clipboard or SystemClipboard()
        self._output_format = OutputFormat.parse(output_format)
        self._jpeg_quality = jpeg_quality
        self._preview_box = preview_box

        self._state = ControllerState.EMPTY
        self._source: Optional[SourceImage] = None
        self._target_width = 0
        self._result: Optional[ResizeResult] = None
        self._preview_buffer: Optional[Image.Image] = None
        self._committed_buffer: Optional[Image.Image] = None
        self._closed = False

    # ---- 状態参照 ----
    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def source(self) -> Optional[SourceImage]:
        return self._source

    @property
    def target_width(self) -> int:
        return self._target_width

    @property
    def target_height(self) -> int:
        if self._source is None:
            return 0
        return target_height(self._target_width, self._source.aspect_ratio)

    @property
    def result(self) -> Optional[ResizeResult]:
        return self._result

    @property
    def output_format(self) -> OutputFormat:
        return self._output_format

    @property
    def preview_buffer(self) -> Optional[Image.Image]:
        return self._preview_buffer

    @property
    def committed_buffer(self) -> Optional[Image.Image]:
        return self._committed_buffer

    @property
    def decode_pending(self) -> bool:
        return self._decode_session.pending

    def slider_range(self) -> Optional[Tuple[int, int]]:
        if self._source is None:
            return None
        return 1, self._source.natural_width

    # ---- 入力 ----
    def acquire(self, payload: InputPayload) -> Optional[int]:
        """入力を受け付けてデコードを依頼する。画像でなければ状態は変えない。"""
        try:
            blob = self._image_source.to_blob(payload)
        except ShukushoError as exc:
            self._report(exc)
            return None
        return self._decode_session.submit(blob)

    def paste_from_clipboard(self) -> Optional[int]:
        """貼り付けイベント・ショートカットの両方からここに来る。"""
        try:
            payload = self._clipboard.read()
        except ShukushoError as exc:
            self._report(exc)
            return None
        return self.acquire(payload)

    def pump(self) -> bool:
        """完了したデコードを反映する。UIスレッドから定期的に呼ぶ。"""
        applied = False
        for completion in self._decode_session.poll():
            applied = self._apply_completion(completion) or applied
        return applied

    def _apply_completion(self, completion: DecodeCompletion) -> bool:
        if completion.error is not None:
            self._report(completion.error)
            return False
        if completion.source is None:
            return False
        if self._closed:
            completion.source.close()
            return False
        self._load_source(completion.source)
        return True

    def _load_source(self, source: SourceImage) -> None:
        previous = self._source
        self._source = source
        self._target_width = source.natural_width
        self._result = None
        self._committed_buffer = None
        self._preview_buffer = render_preview(source.bitmap, *self._preview_box)
        self._state = ControllerState.LOADED
        if previous is not None and previous is not source:
            previous.close()

        logger.info(
            "loaded %s (%dx%d, %d bytes)",
            source.display_name,
            source.natural_width,
            source.natural_height,
            source.original_byte_size,
        )
        self._view.show_preview(self._preview_buffer)
        self._view.show_source_info(source)
        self._view.show_target(self._target_width, self.target_height, None)

    # ---- スライダー ----
    def set_target_width(self, width: int) -> None:
        """ドラッグ中の目標幅を更新する。状態は変えない。

        Raises:
            InvalidTargetSize: 幅が [1, 元画像の幅] の範囲外の場合
        """
        if self._source is None:
            return
        width = int(width)
        if not 1 <= width <= self._source.natural_width:
            raise InvalidTargetSize(width, self._source.natural_width)
        self._target_width = width
        self._view.show_target(width, self.target_height, self._result)

    def commit(self) -> Optional[ResizeResult]:
        """リサンプル + エンコードを1回だけ実行する。未読込なら何もしない。"""
        if self._source is None:
            return None
        try:
            output = resample(self._source.bitmap, self._target_width, self._source.aspect_ratio)
        except InvalidTargetSize as exc:
            self._report(exc)
            return None

        encoded = self._encode(output)
        self._result = ResizeResult(output_bitmap=output, encoded=encoded, output_format=self._output_format)
        self._committed_buffer = render_actual(output)
        self._state = ControllerState.RESIZED
        logger.info("resized to %dx%d (%s, ~%d bytes)", output.width, output.height, encoded.output_format.value, encoded.estimated_byte_size)

        self._view.show_preview(self._committed_buffer)
        self._view.show_target(output.width, output.height, self._result)
        return self._result

    def set_output_format(self, output_format: Union[OutputFormat, str]) -> None:
        """形式の選択だけでは再計算しない。"""
        self._output_format = OutputFormat.parse(output_format)

    # ---- 出力 ----
    def displayed_bitmap(self) -> Optional[Image.Image]:
        """書き出し対象。確定済みならその結果、未確定なら原寸の元画像。"""
        if self._state is ControllerState.RESIZED and self._committed_buffer is not None:
            return self._committed_buffer
        if self._source is not None:
            return self._source.bitmap
        return None

    def encode_current(self) -> Optional[EncodedImage]:
        """表示中の画像を現在の形式でエンコードする（リサンプルはしない）。"""
        bitmap = self.displayed_bitmap()
        if bitmap is None:
            return None
        result = self._result
        if (
            self._state is ControllerState.RESIZED
            and result is not None
            and result.output_format is self._output_format
        ):
            return result.encoded
        return self._encode(bitmap)

    def suggested_export_name(self) -> Optional[str]:
        bitmap = self.displayed_bitmap()
        if bitmap is None or self._source is None:
            return None
        return export_filename(self._source.display_name, bitmap.width, bitmap.height, self._output_format)

    def export_to(self, output_path: Union[str, Path]) -> Optional[Path]:
        encoded = self.encode_current()
        if encoded is None:
            return None
        try:
            saved = save_export(encoded, output_path)
        except ShukushoError as exc:
            self._report(exc)
            return None
        self._view.show_message(build_export_done_text(filename=saved.name))
        return saved

    def copy_to_clipboard(self) -> bool:
        encoded = self.encode_current()
        if encoded is None:
            return False
        try:
            self._clipboard.write(encoded.data, encoded.output_format.mime_type)
        except ShukushoError as exc:
            self._report(exc)
            return False
        self._view.show_message(
            build_copy_done_text(
                format_label=encoded.output_format.name,
                width=encoded.width,
                height=encoded.height,
            )
        )
        return True

    # ---- ライフサイクル ----
    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._source is not None:
            self._source.close()
        self._source = None
        self._result = None
        self._preview_buffer = None
        self._committed_buffer = None
        self._state = ControllerState.EMPTY

    def __enter__(self) -> "InteractionController":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def _encode(self, bitmap: Image.Image) -> EncodedImage:
        quality = self._jpeg_quality if self._output_format is OutputFormat.JPEG else None
        return encode(bitmap, self._output_format, quality)

    def _report(self, error: ShukushoError) -> None:
        logger.warning("%s: %s", type(error).__name__, error)
        self._view.show_message(user_message(error), level="error")
