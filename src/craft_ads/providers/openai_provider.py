from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

import openai
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from craft_ads.config import Settings, settings as default_settings
from craft_ads.errors import UpstreamServiceError
from craft_ads.prompts import COPY_SYSTEM_PROMPT, RESEARCH_SYSTEM_PROMPT, copy_user_text, research_user_text
from craft_ads.providers.base import EditedImage

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Worth another attempt; anything else (bad request, auth, ...) fails the stage at once.
TRANSIENT_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.InternalServerError,
)


class OpenAIAdProvider:
    """Research, ad copy and image edit calls against the OpenAI API."""

    name = "openai"

    def __init__(self, api_key: str | None = None, config: Settings | None = None, client: Any = None) -> None:
        self.config = config or default_settings
        if client is None:
            # Retries are handled here, not inside the SDK.
            client = openai.AsyncOpenAI(api_key=api_key or self.config.openai_api_key, max_retries=0)
        self.client = client

    async def research(self, title: str, description: str, image_data_url: str) -> str | None:
        resp = await self._call(
            "research",
            lambda: self.client.chat.completions.create(
                model=self.config.openai_research_model,
                messages=[
                    {"role": "system", "content": RESEARCH_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": research_user_text(title, description)},
                            {"type": "image_url", "image_url": {"url": image_data_url, "detail": "low"}},
                        ],
                    },
                ],
                max_tokens=self.config.research_max_tokens,
            ),
        )
        return _first_message_text(resp)

    async def compose_ad_copy(self, title: str, description: str, research_summary: str) -> str | None:
        resp = await self._call(
            "ad copy",
            lambda: self.client.chat.completions.create(
                model=self.config.openai_copy_model,
                messages=[
                    {"role": "system", "content": COPY_SYSTEM_PROMPT},
                    {"role": "user", "content": copy_user_text(title, description, research_summary)},
                ],
                max_tokens=self.config.copy_max_tokens,
                temperature=self.config.copy_temperature,
            ),
        )
        return _first_message_text(resp)

    async def edit_image(self, image_png: bytes, prompt: str, size: str) -> EditedImage:
        model = self.config.openai_image_model
        resp = await self._call(
            "image edit",
            lambda: self.client.images.edit(
                model=model,
                image=("input_image.png", image_png, "image/png"),
                prompt=prompt,
                n=1,
                size=size,
                quality=self.config.image_quality,
            ),
        )

        data = getattr(resp, "data", None) or []
        b64 = getattr(data[0], "b64_json", None) if data else None
        raw: dict[str, Any] = {}
        if not b64:
            # Keep the raw envelope so an empty response can be diagnosed from the logs.
            try:
                raw = resp.model_dump(exclude_none=True)
            except AttributeError:
                raw = {"response": repr(resp)}
        return EditedImage(b64_json=b64 or None, provider=self.name, model=model, raw_metadata=raw)

    async def _call(self, what: str, fn: Callable[[], Awaitable[T]]) -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.config.vendor_max_attempts)),
            wait=wait_exponential(min=self.config.vendor_retry_min_wait_s, max=self.config.vendor_retry_max_wait_s),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await fn()
        except openai.OpenAIError as exc:
            raise UpstreamServiceError(f"OpenAI {what} call failed: {exc}") from exc
        # reraise=True means the loop above always returns or raises.
        raise UpstreamServiceError(f"OpenAI {what} call was never attempted")


def _first_message_text(resp: Any) -> str | None:
    choices = getattr(resp, "choices", None) or []
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    if not isinstance(content, str):
        return None
    return content.strip() or None
