from __future__ import annotations

import logging
from typing import Any

from craft_ads.config import Settings, settings as default_settings
from craft_ads.errors import InvalidImageFormatError, UpstreamServiceError
from craft_ads.imaging import DataUrlParseError, decode_data_url
from craft_ads.prompts import RESEARCH_SYSTEM_PROMPT, research_user_text

logger = logging.getLogger(__name__)


class GeminiResearchProvider:
    """Research stage on a Gemini vision model, as an alternative to OpenAI."""

    name = "gemini"

    def __init__(self, api_key: str | None = None, config: Settings | None = None, client: Any = None) -> None:
        # Imported lazily so the service can run without the dependency when OpenAI does research.
        from google.genai import types  # type: ignore

        self.config = config or default_settings
        self._types = types
        if client is None:
            from google import genai  # type: ignore

            client = genai.Client(api_key=api_key or self.config.gemini_api_key)
        self.client = client

    async def research(self, title: str, description: str, image_data_url: str) -> str | None:
        decoded = decode_data_url(image_data_url)
        if isinstance(decoded, DataUrlParseError):
            raise InvalidImageFormatError(f"Invalid or unsupported image format received: {decoded.reason}")

        types = self._types
        contents: list[Any] = [
            research_user_text(title, description),
            types.Part.from_bytes(data=decoded.data, mime_type=decoded.mime_type),
        ]
        try:
            resp = await self.client.aio.models.generate_content(
                model=self.config.gemini_vision_model,
                contents=contents,
                config=types.GenerateContentConfig(
                    system_instruction=RESEARCH_SYSTEM_PROMPT,
                    max_output_tokens=self.config.research_max_tokens,
                    media_resolution=types.MediaResolution.MEDIA_RESOLUTION_LOW,
                ),
            )
        except Exception as exc:
            # google-genai raises its own error hierarchy plus plain transport errors.
            raise UpstreamServiceError(f"Gemini research call failed: {exc}") from exc

        text = getattr(resp, "text", None)
        if not isinstance(text, str):
            return None
        return text.strip() or None
