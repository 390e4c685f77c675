"""Shared fakes for the vendor collaborators and small image fixtures."""

import base64
from io import BytesIO

import pytest
from PIL import Image

from craft_ads.config import Settings
from craft_ads.errors import StorageWriteError
from craft_ads.pipeline import AdPipeline
from craft_ads.providers.base import EditedImage


def make_image_bytes(fmt: str, size=(32, 24), mode="RGB", color=(200, 30, 60)) -> bytes:
    buf = BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


class CallLog:
    def __init__(self):
        self.calls = []

    def names(self):
        return [name for name, _ in self.calls]


class FakeResearch:
    name = "fake-research"

    def __init__(self, log, text="Eco-minded commuters; durable steel; clean outdoor vibe."):
        self.log = log
        self.text = text

    async def research(self, title, description, image_data_url):
        self.log.calls.append(("research", (title, description, image_data_url)))
        if isinstance(self.text, Exception):
            raise self.text
        return self.text


class FakeCopywriter:
    name = "fake-copy"

    def __init__(self, log, text='Hero shot. Headline "Drink Bold" top-center. [APPLE MINIMAL]'):
        self.log = log
        self.text = text

    async def compose_ad_copy(self, title, description, research_summary):
        self.log.calls.append(("copy", (title, description, research_summary)))
        return self.text


class FakeImageEditor:
    name = "fake-image"

    def __init__(self, log, b64=None):
        self.log = log
        self.b64 = b64 if b64 is not None else base64.b64encode(make_image_bytes("PNG", (16, 16))).decode("ascii")

    async def edit_image(self, image_png, prompt, size):
        self.log.calls.append(("edit", (image_png, prompt, size)))
        return EditedImage(b64_json=self.b64 or None, provider=self.name, model="fake-model", raw_metadata={"data": []})


class FakeStore:
    def __init__(self, log, base_url="https://storage.test", resolve_urls=True):
        self.log = log
        self.base_url = base_url
        self.resolve_urls = resolve_urls
        self.objects = {}

    async def upload(self, bucket, path, data, *, content_type, cache_control, overwrite=False):
        self.log.calls.append(("upload", (bucket, path, content_type, cache_control, overwrite)))
        key = (bucket, path)
        if key in self.objects and not overwrite:
            raise StorageWriteError("The resource already exists")
        self.objects[key] = data
        return path

    async def get_public_url(self, bucket, path):
        self.log.calls.append(("public_url", (bucket, path)))
        if not self.resolve_urls:
            return None
        return f"{self.base_url}/{bucket}/{path}"


@pytest.fixture
def config():
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        supabase_url="https://project.supabase.co",
        supabase_key="anon-key",
        vendor_retry_min_wait_s=0,
        vendor_retry_max_wait_s=0,
    )


@pytest.fixture
def log():
    return CallLog()


@pytest.fixture
def fakes(log):
    return {
        "research": FakeResearch(log),
        "copywriter": FakeCopywriter(log),
        "image_editor": FakeImageEditor(log),
        "store": FakeStore(log),
    }


@pytest.fixture
def pipeline(fakes, config):
    return AdPipeline(config=config, **fakes)


@pytest.fixture
def jpeg_data_url():
    return to_data_url(make_image_bytes("JPEG", (40, 30)), "image/jpeg")


@pytest.fixture
def png_data_url():
    return to_data_url(make_image_bytes("PNG", (40, 30)), "image/png")
