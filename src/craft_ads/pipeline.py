from __future__ import annotations

import asyncio
import base64
import binascii
import dataclasses
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

from craft_ads.config import Settings, settings as default_settings
from craft_ads.errors import (
    AdGenerationError,
    StageTimeoutError,
    StorageUrlResolutionError,
    UpstreamEmptyResponseError,
    UpstreamServiceError,
    ValidationError,
)
from craft_ads.imaging import (
    DEFAULT_IMAGE_SIZE,
    REQUIRED_MIME_TYPE,
    NormalizedImage,
    estimate_decoded_size,
    normalize_image,
    size_for_aspect_ratio,
)
from craft_ads.providers.base import CopyProvider, ImageEditProvider, ObjectStore, ResearchProvider
from craft_ads.storage import RunManifestStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Stage(str, Enum):
    VALIDATING = "validating"
    RESEARCHING = "researching"
    COMPOSING_COPY = "composing_copy"
    NORMALIZING_IMAGE = "normalizing_image"
    SYNTHESIZING_IMAGE = "synthesizing_image"
    PERSISTING = "persisting"
    DONE = "done"


STAGE_LABELS = {
    Stage.VALIDATING: "Validation",
    Stage.RESEARCHING: "Research",
    Stage.COMPOSING_COPY: "Ad Copy",
    Stage.NORMALIZING_IMAGE: "Image normalization",
    Stage.SYNTHESIZING_IMAGE: "Image edit",
    Stage.PERSISTING: "Storage",
}


@dataclass(frozen=True)
class AdRequest:
    title: str | None
    description: str | None
    image_data_url: str | None
    aspect_ratio: str | None = "1:1"


@dataclass(frozen=True)
class StoredAdRecord:
    ad_copy: str
    image_url: str
    storage_path: str


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    stage: Stage
    error: AdGenerationError

    @property
    def message(self) -> str:
        if isinstance(self.error, ValidationError):
            return str(self.error)
        return f"{STAGE_LABELS.get(self.stage, self.stage.value)} step failed: {self.error}"


StageResult = Union[Ok[T], Err]


@dataclass(frozen=True)
class PipelineState:
    request: AdRequest
    run_id: str
    research_summary: str | None = None
    ad_copy: str | None = None
    image: NormalizedImage | None = None
    image_size: str = DEFAULT_IMAGE_SIZE
    generated_png: bytes | None = None
    storage_path: str | None = None
    image_url: str | None = None
    timings: dict[str, float] = field(default_factory=dict)


StageFn = Callable[[PipelineState], Awaitable[PipelineState]]


class AdPipeline:
    """
    Research -> ad copy -> image normalization -> image edit -> storage.

    Every stage runs in order; the first failing stage ends the run with an Err
    naming that stage. Nothing is retried at this level and no partial record is
    ever produced.
    """

    def __init__(
        self,
        research: ResearchProvider,
        copywriter: CopyProvider,
        image_editor: ImageEditProvider,
        store: ObjectStore,
        config: Settings | None = None,
        manifests: RunManifestStore | None = None,
    ) -> None:
        self.research = research
        self.copywriter = copywriter
        self.image_editor = image_editor
        self.store = store
        self.config = config or default_settings
        self.manifests = manifests

    def stages(self) -> list[tuple[Stage, StageFn, float | None]]:
        c = self.config
        return [
            (Stage.VALIDATING, self._validate, None),
            (Stage.RESEARCHING, self._research, c.research_timeout_s),
            (Stage.COMPOSING_COPY, self._compose_copy, c.copy_timeout_s),
            (Stage.NORMALIZING_IMAGE, self._normalize_image, c.normalize_timeout_s),
            (Stage.SYNTHESIZING_IMAGE, self._synthesize_image, c.image_edit_timeout_s),
            (Stage.PERSISTING, self._persist, c.storage_timeout_s),
        ]

    async def run(self, request: AdRequest) -> StageResult[StoredAdRecord]:
        state = PipelineState(request=request, run_id=uuid.uuid4().hex[:12])
        started = time.perf_counter()

        outcome: StageResult[PipelineState] = Ok(state)
        for stage, step, timeout in self.stages():
            outcome = await self._run_stage(stage, step, state, timeout)
            if isinstance(outcome, Err):
                break
            state = outcome.value

        total = time.perf_counter() - started
        if isinstance(outcome, Err):
            logger.error("Run %s failed at %s after %.2fs: %s", state.run_id, outcome.stage.value, total, outcome.message)
            await self._record(state, outcome, total)
            return outcome

        record = StoredAdRecord(
            ad_copy=state.ad_copy or "",
            image_url=state.image_url or "",
            storage_path=state.storage_path or "",
        )
        logger.info("Run %s done in %.2fs: %s", state.run_id, total, record.image_url)
        await self._record(state, Ok(record), total)
        return Ok(record)

    async def generate(self, request: AdRequest) -> StoredAdRecord:
        """Like run(), but raises the failing stage's error instead of returning Err."""
        result = await self.run(request)
        if isinstance(result, Err):
            raise result.error
        return result.value

    async def _run_stage(
        self,
        stage: Stage,
        step: StageFn,
        state: PipelineState,
        timeout: float | None,
    ) -> StageResult[PipelineState]:
        logger.info("[%s] %s started", state.run_id, stage.value)
        t0 = time.perf_counter()
        error: AdGenerationError | None = None
        try:
            next_state = await asyncio.wait_for(step(state), timeout=timeout)
        except AdGenerationError as exc:
            error = exc
        except asyncio.TimeoutError:
            error = StageTimeoutError(f"timed out after {timeout:g}s")
        except asyncio.CancelledError:
            logger.warning("[%s] %s cancelled", state.run_id, stage.value)
            raise
        except Exception as exc:
            logger.exception("[%s] %s raised an unexpected error", state.run_id, stage.value)
            error = UpstreamServiceError(str(exc) or exc.__class__.__name__)

        elapsed = round(time.perf_counter() - t0, 3)
        if error is not None:
            error.stage = stage
            state.timings[stage.value] = elapsed
            return Err(stage=stage, error=error)

        timings = {**next_state.timings, stage.value: elapsed}
        logger.info("[%s] %s finished in %.2fs", state.run_id, stage.value, elapsed)
        return Ok(dataclasses.replace(next_state, timings=timings))

    async def _validate(self, state: PipelineState) -> PipelineState:
        req = state.request
        title = (req.title or "").strip()
        description = (req.description or "").strip()
        image = (req.image_data_url or "").strip()
        if not title or not description or not image:
            raise ValidationError("Missing required fields: title, description, or imageBase64")

        approx = estimate_decoded_size(image)
        if approx > self.config.max_image_bytes:
            raise ValidationError(
                f"Image too large: ~{approx} bytes exceeds the {self.config.max_image_bytes} byte limit"
            )

        logger.info("[%s] title=%r description=%r image=%s...", state.run_id, title, description[:50], image[:30])
        return dataclasses.replace(
            state,
            request=AdRequest(
                title=title,
                description=description,
                image_data_url=image,
                aspect_ratio=req.aspect_ratio or "1:1",
            ),
        )

    async def _research(self, state: PipelineState) -> PipelineState:
        req = state.request
        summary = await self.research.research(req.title, req.description, req.image_data_url)
        summary = (summary or "").strip()
        if not summary:
            raise UpstreamEmptyResponseError(f"{self.research.name} research returned empty content.")
        logger.info("[%s] research summary: %s", state.run_id, summary[:200])
        return dataclasses.replace(state, research_summary=summary)

    async def _compose_copy(self, state: PipelineState) -> PipelineState:
        req = state.request
        ad_copy = await self.copywriter.compose_ad_copy(req.title, req.description, state.research_summary)
        ad_copy = (ad_copy or "").strip()
        if not ad_copy:
            raise UpstreamEmptyResponseError(f"{self.copywriter.name} ad copy returned empty content.")
        logger.info("[%s] ad copy: %s", state.run_id, ad_copy[:200])
        return dataclasses.replace(state, ad_copy=ad_copy)

    async def _normalize_image(self, state: PipelineState) -> PipelineState:
        # Pillow work is CPU bound; run it off the event loop.
        image = await asyncio.to_thread(normalize_image, state.request.image_data_url)
        size = size_for_aspect_ratio(state.request.aspect_ratio)
        logger.info(
            "[%s] image ready (%s, converted=%s), size %s for aspect ratio %s",
            state.run_id,
            image.source_mime_type,
            image.converted,
            size,
            state.request.aspect_ratio,
        )
        return dataclasses.replace(state, image=image, image_size=size)

    async def _synthesize_image(self, state: PipelineState) -> PipelineState:
        edited = await self.image_editor.edit_image(state.image.data, state.ad_copy, state.image_size)
        if not edited.b64_json:
            logger.error("[%s] image edit response had no b64_json: %s", state.run_id, _truncate(edited.raw_metadata))
            raise UpstreamEmptyResponseError(f"{edited.provider} image edit returned no b64_json data.")
        try:
            png = base64.b64decode(edited.b64_json, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise UpstreamEmptyResponseError(f"{edited.provider} image edit returned undecodable image data: {exc}")
        if not png:
            raise UpstreamEmptyResponseError(f"{edited.provider} image edit returned an empty image.")
        return dataclasses.replace(state, generated_png=png)

    async def _persist(self, state: PipelineState) -> PipelineState:
        c = self.config
        filename = f"ad-image-{uuid.uuid4()}.png"
        prefix = c.storage_prefix.strip("/")
        path = f"{prefix}/{filename}" if prefix else filename
        stored = await self.store.upload(
            c.storage_bucket,
            path,
            state.generated_png,
            content_type=REQUIRED_MIME_TYPE,
            cache_control=c.storage_cache_control,
            overwrite=False,
        )
        url = await self.store.get_public_url(c.storage_bucket, path)
        if not url:
            raise StorageUrlResolutionError("Image uploaded but failed to retrieve its public URL.")
        return dataclasses.replace(state, storage_path=stored, image_url=url)

    async def _record(self, state: PipelineState, outcome: StageResult[Any], total: float) -> None:
        if self.manifests is None:
            return
        req = state.request
        manifest: dict[str, Any] = {
            "run_id": state.run_id,
            "inputs": {
                "title": req.title,
                "aspect_ratio": req.aspect_ratio,
                "image_size": state.image_size,
            },
            "timings": dict(state.timings),
            "total_s": round(total, 3),
        }
        if isinstance(outcome, Err):
            manifest["status"] = "failed"
            manifest["failed_stage"] = outcome.stage.value
            manifest["error"] = outcome.message
        else:
            manifest["status"] = Stage.DONE.value
            manifest["outputs"] = {
                "ad_copy": outcome.value.ad_copy,
                "storage_path": outcome.value.storage_path,
                "image_url": outcome.value.image_url,
            }
        try:
            await asyncio.to_thread(self.manifests.write_run_manifest, manifest)
        except OSError:
            logger.warning("Could not write run manifest for %s", state.run_id, exc_info=True)


def _truncate(value: Any, limit: int = 500) -> str:
    s = repr(value)
    return s if len(s) <= limit else s[:limit] + "..."
