import io

import pytest
from PIL import Image

from pipeline.io_types import ImageInput, ServiceOptions
from pipeline.pipeline import TryOnPipeline
from pipeline.prompts import ANALYZE_ITEM_PROMPT, DESCRIBE_ITEM_PROMPT, REVIEW_PROMPT


def png_bytes(size=(30, 40), color=(200, 30, 30), fmt="PNG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def _next(value):
    if isinstance(value, list):
        value = value.pop(0)
    if isinstance(value, Exception):
        raise value
    return value


class FakeProvider:
    """Scripted provider: text answers keyed by prompt, image answers consumed in order."""

    def __init__(self, text=None, images=None):
        self.text = {
            ANALYZE_ITEM_PROMPT: "clothing",
            DESCRIBE_ITEM_PROMPT: "a red wool sweater",
            REVIEW_PROMPT: "YES",
        }
        self.text.update(text or {})
        self.images = list(images if images is not None else ["data:image/png;base64,AAAA"])
        self.text_calls = []
        self.image_calls = []

    def generate_text(self, model, parts):
        self.text_calls.append((model, list(parts)))
        return _next(self.text[parts[-1]])

    def generate_image(self, model, parts, image_config=None):
        self.image_calls.append((model, list(parts), image_config))
        if not self.images:
            raise RuntimeError("no scripted image left")
        return _next(self.images.pop(0))


@pytest.fixture
def person():
    return ImageInput(data=png_bytes(color=(10, 10, 10)), mime_type="image/png")


@pytest.fixture
def item():
    return ImageInput(data=png_bytes(size=(10, 10)), mime_type="image/jpeg")


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def make_pipeline():
    def _make(provider, **cfg):
        return TryOnPipeline(cfg, provider_factory=lambda api_key=None: provider)

    return _make


@pytest.fixture
def status_log():
    return []


@pytest.fixture
def pro_options(status_log):
    return ServiceOptions(model_mode="pro", on_status_update=status_log.append)


@pytest.fixture
def flash_options(status_log):
    return ServiceOptions(model_mode="flash", on_status_update=status_log.append)


@pytest.fixture(autouse=True)
def _no_server_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)
