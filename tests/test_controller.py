from __future__ import annotations

import io
import struct
import zlib
from pathlib import Path

import pytest
from PIL import Image

from conftest import FakeClipboard, png_bytes
from shukusho_resizer.controller import ControllerState, InteractionController
from shukusho_resizer.decode_session import DecodeSession
from shukusho_resizer.encoder import OutputFormat
from shukusho_resizer.errors import ClipboardUnavailable, InvalidTargetSize
from shukusho_resizer.image_source import ClipboardPayload, FileBytes, ImageSource


def _controller(view, clipboard, session=None, **kwargs) -> InteractionController:
    image_source = ImageSource()
    return InteractionController(
        view=view,
        image_source=image_source,
        decode_session=session or DecodeSession(image_source, run_worker=lambda job: job()),
        clipboard=clipboard,
        **kwargs,
    )


def _png_header_only(width: int, height: int) -> bytes:
    def chunk(kind: bytes, body: bytes) -> bytes:
        return struct.pack(">I", len(body)) + kind + body + struct.pack(">I", zlib.crc32(kind + body))

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", b"") + chunk(b"IEND", b"")


def _load(controller: InteractionController, name: str = "photo.png", size=(800, 600)) -> None:
    assert controller.acquire(FileBytes(data=png_bytes(size), name=name)) is not None
    assert controller.pump()


def test_initial_state_is_empty(recording_view, fake_clipboard) -> None:
    controller = _controller(recording_view, fake_clipboard)

    assert controller.state is ControllerState.EMPTY
    assert controller.source is None
    assert controller.slider_range() is None
    assert controller.displayed_bitmap() is None
    assert controller.suggested_export_name() is None


def test_load_resize_and_export(recording_view, fake_clipboard, temp_dir: Path) -> None:
    controller = _controller(recording_view, fake_clipboard)

    _load(controller)

    assert controller.state is ControllerState.LOADED
    assert controller.slider_range() == (1, 800)
    assert controller.target_width == 800
    assert controller.preview_buffer.size == (500, 500)
    assert recording_view.sources[-1].natural_width == 800
    assert recording_view.targets[-1] == (800, 600, None)

    controller.set_target_width(400)

    assert controller.state is ControllerState.LOADED
    assert controller.target_height == 300
    assert controller.result is None
    assert recording_view.targets[-1] == (400, 300, None)

    result = controller.commit()

    assert result is not None
    assert controller.state is ControllerState.RESIZED
    assert result.size == (400, 300)
    assert controller.committed_buffer.size == (400, 300)
    assert result.encoded_byte_size_estimate == len(result.encoded.data)
    assert recording_view.previews[-1] is controller.committed_buffer
    assert recording_view.targets[-1][2] is result

    name = controller.suggested_export_name()
    assert name == "photo.png_(400x300)_resized.png"
    saved = controller.export_to(temp_dir / name)

    assert saved == temp_dir / name
    with Image.open(saved) as exported:
        assert exported.format == "PNG"
        assert exported.size == (400, 300)
    assert recording_view.messages[-1][0] == "info"


def test_slider_drag_does_not_resample(recording_view, fake_clipboard) -> None:
    controller = _controller(recording_view, fake_clipboard)
    _load(controller)
    controller.set_target_width(200)
    first = controller.commit()

    controller.set_target_width(100)

    assert controller.result is first
    assert controller.committed_buffer.size == (200, 150)
    assert controller.state is ControllerState.RESIZED


def test_set_target_width_out_of_range(recording_view, fake_clipboard) -> None:
    controller = _controller(recording_view, fake_clipboard)
    _load(controller)

    with pytest.raises(InvalidTargetSize):
        controller.set_target_width(801)
    with pytest.raises(InvalidTargetSize):
        controller.set_target_width(0)
    assert controller.target_width == 800


def test_commit_without_source_is_noop(recording_view, fake_clipboard) -> None:
    controller = _controller(recording_view, fake_clipboard)

    controller.set_target_width(10)

    assert controller.commit() is None
    assert controller.state is ControllerState.EMPTY
    assert recording_view.previews == []


def test_jpeg_copy_to_clipboard(recording_view, fake_clipboard) -> None:
    controller = _controller(recording_view, fake_clipboard)
    _load(controller)
    controller.set_target_width(400)
    controller.commit()

    controller.set_output_format("jpeg")
    assert controller.copy_to_clipboard()

    data, mime_type = fake_clipboard.writes[-1]
    assert mime_type == "image/jpeg"
    with Image.open(io.BytesIO(data)) as copied:
        assert copied.format == "JPEG"
        assert copied.size == (400, 300)
    assert "JPEG [400 x 300]" in recording_view.messages[-1][1]


def test_format_change_does_not_recompute(recording_view, fake_clipboard) -> None:
    controller = _controller(recording_view, fake_clipboard)
    _load(controller)
    controller.set_target_width(400)
    result = controller.commit()

    controller.set_output_format(OutputFormat.JPEG)

    assert controller.result is result
    assert controller.result.output_format is OutputFormat.PNG
    assert controller.suggested_export_name() == "photo.png_(400x300)_resized.jpg"


def test_export_in_loaded_state_uses_natural_size(recording_view, fake_clipboard, temp_dir: Path) -> None:
    controller = _controller(recording_view, fake_clipboard)
    _load(controller, size=(120, 80))

    saved = controller.export_to(temp_dir / "out.png")

    with Image.open(saved) as exported:
        assert exported.size == (120, 80)


def test_new_image_resets_result(recording_view, fake_clipboard) -> None:
    controller = _controller(recording_view, fake_clipboard)
    _load(controller)
    controller.set_target_width(400)
    controller.commit()

    _load(controller, name="second.png", size=(300, 100))

    assert controller.state is ControllerState.LOADED
    assert controller.result is None
    assert controller.committed_buffer is None
    assert controller.target_width == 300
    assert controller.source.display_name == "second.png"


def test_unsupported_payload_leaves_state_unchanged(recording_view, fake_clipboard) -> None:
    controller = _controller(recording_view, fake_clipboard)
    _load(controller)
    source = controller.source

    request_id = controller.acquire(FileBytes(data=b"plain text", name="notes.txt"))

    assert request_id is None
    assert controller.source is source
    assert controller.state is ControllerState.LOADED
    level, text = recording_view.messages[-1]
    assert level == "error"
    assert "画像ファイルではない" in text


def test_broken_image_is_reported(recording_view, fake_clipboard) -> None:
    controller = _controller(recording_view, fake_clipboard)
    data = png_bytes((64, 64))
    controller.acquire(FileBytes(data=data[:40], name="broken.png", mime_type="image/png"))

    assert not controller.pump()
    assert controller.state is ControllerState.EMPTY
    assert recording_view.messages[-1][0] == "error"


def test_stale_decode_is_ignored(recording_view, fake_clipboard, deferred_runner) -> None:
    image_source = ImageSource()
    session = DecodeSession(image_source, run_worker=deferred_runner)
    controller = _controller(recording_view, fake_clipboard, session=session)

    controller.acquire(FileBytes(data=png_bytes((50, 50)), name="a.png"))
    controller.acquire(FileBytes(data=png_bytes((60, 30)), name="b.png"))
    assert controller.decode_pending

    deferred_runner.run(1)
    assert controller.pump()
    deferred_runner.run(0)
    assert not controller.pump()

    assert controller.source.display_name == "b.png"
    assert controller.target_width == 60


def test_paste_image_from_clipboard(recording_view) -> None:
    clipboard = FakeClipboard(ClipboardPayload(image=Image.new("RGB", (64, 32))))
    controller = _controller(recording_view, clipboard)

    assert controller.paste_from_clipboard() is not None
    controller.pump()

    assert controller.source.display_name == "clipboard.png"
    assert controller.suggested_export_name() == "clipboard.png_(64x32)_resized.png"


def test_clipboard_unavailable_is_reported(recording_view) -> None:
    clipboard = FakeClipboard(
        read_error=ClipboardUnavailable("denied"),
        write_error=ClipboardUnavailable("denied"),
    )
    controller = _controller(recording_view, clipboard)

    assert controller.paste_from_clipboard() is None
    assert recording_view.messages[-1][0] == "error"

    clipboard.read_error = None
    clipboard.payload = ClipboardPayload(image=Image.new("RGB", (8, 8)))
    controller.paste_from_clipboard()
    controller.pump()

    assert controller.copy_to_clipboard() is False
    assert "クリップボード" in recording_view.messages[-1][1]


def test_close_releases_source(recording_view, fake_clipboard) -> None:
    with _controller(recording_view, fake_clipboard) as controller:
        _load(controller)
    assert controller.state is ControllerState.EMPTY
    assert controller.source is None


def test_oversized_image_header_is_reported(recording_view, fake_clipboard) -> None:
    controller = _controller(recording_view, fake_clipboard)
    _load(controller, size=(40, 30))
    source = controller.source

    request_id = controller.acquire(FileBytes(data=_png_header_only(30000, 30000), name="huge.png"))

    assert request_id is None
    assert controller.source is source
    assert controller.state is ControllerState.LOADED
    level, text = recording_view.messages[-1]
    assert level == "error"
    assert "デコード" in text
