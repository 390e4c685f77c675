from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from craft_ads.errors import ImageConversionError, InvalidImageFormatError

logger = logging.getLogger(__name__)

REQUIRED_MIME_TYPE = "image/png"
SUPPORTED_MIME_TYPES = ("image/png", "image/jpeg", "image/webp")

DEFAULT_IMAGE_SIZE = "1024x1024"
IMAGE_SIZES = {
    "1:1": "1024x1024",
    "16:9": "1536x1024",
    "9:16": "1024x1536",
}

_DATA_URL_RE = re.compile(r"^data:(image/[a-z0-9.+-]+);base64,(.+)$", re.DOTALL | re.IGNORECASE)

# PNG can hold these directly; anything else (CMYK, YCbCr, ...) is converted first.
_PNG_MODES = {"1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"}


@dataclass(frozen=True)
class DecodedDataUrl:
    mime_type: str
    data: bytes


@dataclass(frozen=True)
class DataUrlParseError:
    reason: str


@dataclass(frozen=True)
class NormalizedImage:
    data: bytes
    source_mime_type: str
    converted: bool
    width: int | None = None
    height: int | None = None

    @property
    def mime_type(self) -> str:
        return REQUIRED_MIME_TYPE


def decode_data_url(value: str) -> DecodedDataUrl | DataUrlParseError:
    """
    Split a `data:image/<type>;base64,<payload>` string into its MIME type and bytes.

    Returns a DataUrlParseError instead of raising so callers can decide how a
    malformed upload is reported.
    """
    m = _DATA_URL_RE.match((value or "").strip())
    if not m:
        return DataUrlParseError("not a base64 image data URL")

    mime_type = m.group(1).lower()
    if mime_type not in SUPPORTED_MIME_TYPES:
        return DataUrlParseError(f"unsupported image type '{mime_type}' (must be png, jpeg, or webp)")

    payload = "".join(m.group(2).split())
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        return DataUrlParseError(f"invalid base64 payload: {exc}")
    if not data:
        return DataUrlParseError("empty image payload")
    return DecodedDataUrl(mime_type=mime_type, data=data)


def estimate_decoded_size(value: str) -> int:
    """Approximate decoded byte length of a data URL without decoding it."""
    s = value or ""
    comma = s.find(",")
    payload = s[comma + 1 :] if comma != -1 else s
    payload = payload.strip()
    padding = len(payload) - len(payload.rstrip("="))
    return max(0, (len(payload) * 3) // 4 - padding)


def size_for_aspect_ratio(aspect_ratio: str | None) -> str:
    return IMAGE_SIZES.get(aspect_ratio or "", DEFAULT_IMAGE_SIZE)


def normalize_image(data_url: str) -> NormalizedImage:
    decoded = decode_data_url(data_url)
    if isinstance(decoded, DataUrlParseError):
        raise InvalidImageFormatError(f"Invalid or unsupported image format received: {decoded.reason}")

    if decoded.mime_type == REQUIRED_MIME_TYPE:
        logger.info("Image is already PNG, no conversion needed (%d bytes)", len(decoded.data))
        return NormalizedImage(data=decoded.data, source_mime_type=decoded.mime_type, converted=False)

    logger.info("Converting %s to PNG (%d bytes)", decoded.mime_type, len(decoded.data))
    try:
        png, size = _transcode_to_png(decoded.data)
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageConversionError(f"Failed to convert uploaded image to PNG: {exc}") from exc

    return NormalizedImage(
        data=png,
        source_mime_type=decoded.mime_type,
        converted=True,
        width=size[0],
        height=size[1],
    )


def _transcode_to_png(data: bytes) -> tuple[bytes, tuple[int, int]]:
    with Image.open(BytesIO(data)) as img:
        img.load()
        if img.mode not in _PNG_MODES:
            img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
        buf = BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue(), img.size
