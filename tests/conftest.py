"""
pytest設定ファイル
共通のフィクスチャやテスト設定を定義
"""

import io
import shutil
import tempfile
from pathlib import Path

import pytest
from PIL import Image

from shukusho_resizer.decode_session import DecodeSession
from shukusho_resizer.image_source import ClipboardPayload, ImageSource


def png_bytes(size=(800, 600), color=(255, 0, 0), mode="RGB"):
    buffer = io.BytesIO()
    Image.new(mode, size, color=color).save(buffer, "PNG")
    return buffer.getvalue()


@pytest.fixture
def temp_dir():
    """一時ディレクトリを作成・削除するフィクスチャ"""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def sample_images(temp_dir):
    """様々なフォーマットのサンプル画像を作成するフィクスチャ"""
    images = {}

    # 横長PNG
    png_path = temp_dir / "landscape.png"
    Image.new("RGB", (800, 600), color=(0, 255, 0)).save(png_path, "PNG")
    images["png"] = png_path

    # 透過PNG
    rgba_path = temp_dir / "alpha.png"
    Image.new("RGBA", (300, 200), color=(0, 0, 255, 128)).save(rgba_path, "PNG")
    images["rgba"] = rgba_path

    # JPEG
    jpeg_path = temp_dir / "photo.jpg"
    Image.new("RGB", (1920, 1080), color=(255, 0, 0)).save(jpeg_path, "JPEG", quality=95)
    images["jpeg"] = jpeg_path

    # 縦長画像
    portrait_path = temp_dir / "portrait.jpg"
    Image.new("RGB", (1080, 1920), color=(255, 255, 0)).save(portrait_path, "JPEG")
    images["portrait"] = portrait_path

    # 画像ではないファイル
    text_path = temp_dir / "notes.txt"
    text_path.write_text("not an image", encoding="utf-8")
    images["text"] = text_path

    return images


class FakeClipboard:
    """テスト用のクリップボード。読み取り内容と書き込み履歴を保持する。"""

    def __init__(self, payload=None, read_error=None, write_error=None):
        self.payload = payload or ClipboardPayload()
        self.read_error = read_error
        self.write_error = write_error
        self.writes = []

    def read(self):
        if self.read_error is not None:
            raise self.read_error
        return self.payload

    def write(self, data, mime_type):
        if self.write_error is not None:
            raise self.write_error
        self.writes.append((data, mime_type))


class RecordingView:
    def __init__(self):
        self.previews = []
        self.sources = []
        self.targets = []
        self.messages = []

    def show_preview(self, buffer):
        self.previews.append(buffer)

    def show_source_info(self, source):
        self.sources.append(source)

    def show_target(self, width, height, result):
        self.targets.append((width, height, result))

    def show_message(self, text, *, level="info"):
        self.messages.append((level, text))


class DeferredRunner:
    """ワーカーを即実行せず、テストから順番を指定して走らせる。"""

    def __init__(self):
        self.jobs = []

    def __call__(self, job):
        self.jobs.append(job)

    def run(self, index):
        self.jobs[index]()


@pytest.fixture
def fake_clipboard():
    return FakeClipboard()


@pytest.fixture
def recording_view():
    return RecordingView()


@pytest.fixture
def sync_session():
    return DecodeSession(ImageSource(), run_worker=lambda job: job())


@pytest.fixture
def deferred_runner():
    return DeferredRunner()
