from __future__ import annotations

import base64
import errno
import io
from pathlib import Path

import pytest
from PIL import Image

from shukusho_resizer import encoder
from shukusho_resizer.encoder import (
    OutputFormat,
    build_encoder_save_kwargs,
    encode,
    estimate_size_from_base64,
    export_filename,
    quality_to_pillow,
    save_export,
    to_data_url,
)
from shukusho_resizer.errors import ExportFailure


def test_estimate_size_without_padding() -> None:
    assert estimate_size_from_base64("QUJD") == 3


@pytest.mark.parametrize(("raw", "expected"), [(b"AB", 2), (b"A", 1), (b"ABCD", 4)])
def test_estimate_size_handles_padding(raw: bytes, expected: int) -> None:
    assert estimate_size_from_base64(base64.b64encode(raw).decode("ascii")) == expected


def test_estimate_size_strips_data_url_header() -> None:
    assert estimate_size_from_base64("data:image/png;base64,QUJD") == 3


def test_to_data_url_uses_format_mime_type() -> None:
    assert to_data_url(b"ABC", OutputFormat.JPEG) == "data:image/jpeg;base64,QUJD"


def test_output_format_parse() -> None:
    assert OutputFormat.parse("jpg") is OutputFormat.JPEG
    assert OutputFormat.parse(" PNG ") is OutputFormat.PNG
    assert OutputFormat.JPEG.extension == "jpg"
    assert OutputFormat.PNG.is_lossless
    with pytest.raises(ValueError):
        OutputFormat.parse("webp")


def test_quality_mapping() -> None:
    assert quality_to_pillow(encoder.JPEG_QUALITY) == 90
    assert quality_to_pillow(0.0) == 1
    assert quality_to_pillow(1.0) == 95
    with pytest.raises(ValueError):
        quality_to_pillow(1.5)


def test_build_encoder_save_kwargs() -> None:
    assert build_encoder_save_kwargs(OutputFormat.PNG) == {
        "format": "PNG",
        "optimize": False,
        "compress_level": encoder.PNG_COMPRESS_LEVEL,
    }
    assert build_encoder_save_kwargs(OutputFormat.JPEG)["quality"] == 90


def test_encode_png_estimate_matches_byte_length() -> None:
    bitmap = Image.new("RGBA", (37, 21), color=(10, 20, 30, 40))

    encoded = encode(bitmap, OutputFormat.PNG)

    assert encoded.estimated_byte_size == len(encoded.data)
    assert (encoded.width, encoded.height) == (37, 21)
    with Image.open(io.BytesIO(encoded.data)) as decoded:
        assert decoded.format == "PNG"
        assert decoded.mode == "RGBA"


def test_encode_is_deterministic() -> None:
    bitmap = Image.new("RGB", (64, 48), color=(200, 100, 50))

    first = encode(bitmap, OutputFormat.JPEG, 0.9)
    second = encode(bitmap, OutputFormat.JPEG, 0.9)

    assert first.data == second.data
    assert first.estimated_byte_size == second.estimated_byte_size


def test_encode_jpeg_flattens_alpha_onto_white() -> None:
    bitmap = Image.new("RGBA", (16, 16), color=(0, 0, 0, 0))

    encoded = encode(bitmap, OutputFormat.JPEG, 0.9)

    with Image.open(io.BytesIO(encoded.data)) as decoded:
        assert decoded.format == "JPEG"
        assert decoded.mode == "RGB"
        assert all(channel > 240 for channel in decoded.getpixel((8, 8)))


def test_encode_png_rejects_quality() -> None:
    with pytest.raises(ValueError):
        encode(Image.new("RGB", (4, 4)), OutputFormat.PNG, 0.5)


def test_export_filename_keeps_original_name() -> None:
    assert export_filename("photo.png", 400, 300, OutputFormat.PNG) == "photo.png_(400x300)_resized.png"
    assert export_filename("写真.jpg", 10, 5, "jpeg") == "写真.jpg_(10x5)_resized.jpg"


def test_save_export_writes_file_and_leaves_no_temp(temp_dir: Path) -> None:
    encoded = encode(Image.new("RGB", (20, 10)), OutputFormat.PNG)
    target = temp_dir / "out.png"

    saved = save_export(encoded, target)

    assert saved == target
    assert target.read_bytes() == encoded.data
    assert [p.name for p in temp_dir.iterdir()] == ["out.png"]


def test_save_export_missing_directory_raises_export_failure(temp_dir: Path) -> None:
    encoded = encode(Image.new("RGB", (20, 10)), OutputFormat.PNG)

    with pytest.raises(ExportFailure) as excinfo:
        save_export(encoded, temp_dir / "missing" / "out.png")

    assert excinfo.value.info.category == "not_found"


def test_save_export_classifies_no_space(monkeypatch, temp_dir: Path) -> None:
    encoded = encode(Image.new("RGB", (20, 10)), OutputFormat.PNG)

    def _fail(self, data):
        raise OSError(errno.ENOSPC, "No space left on device")

    monkeypatch.setattr(Path, "write_bytes", _fail)

    with pytest.raises(ExportFailure) as excinfo:
        save_export(encoded, temp_dir / "out.png")

    assert excinfo.value.info.category == "no_space"
