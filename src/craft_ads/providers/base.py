from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class EditedImage:
    # Base64 PNG as returned by the vendor; None when the response carried no image.
    b64_json: str | None
    provider: str
    model: str
    raw_metadata: dict[str, Any] = field(default_factory=dict)


class ResearchProvider(Protocol):
    name: str

    async def research(self, title: str, description: str, image_data_url: str) -> str | None: ...


class CopyProvider(Protocol):
    name: str

    async def compose_ad_copy(self, title: str, description: str, research_summary: str) -> str | None: ...


class ImageEditProvider(Protocol):
    name: str

    async def edit_image(self, image_png: bytes, prompt: str, size: str) -> EditedImage: ...


class ObjectStore(Protocol):
    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        *,
        content_type: str,
        cache_control: str,
        overwrite: bool = False,
    ) -> str: ...

    async def get_public_url(self, bucket: str, path: str) -> str | None: ...
