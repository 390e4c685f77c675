from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, TypeVar

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from craft_ads.config import Settings, settings
from craft_ads.pipeline import AdPipeline, AdRequest, Err
from craft_ads.providers.gemini_provider import GeminiResearchProvider
from craft_ads.providers.openai_provider import OpenAIAdProvider
from craft_ads.storage import RunManifestStore, SupabaseObjectStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DISCONNECT_POLL_S = 0.5


class GenerateAdBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    description: str | None = None
    image_base64: str | None = Field(default=None, alias="imageBase64")
    aspect_ratio: str | None = Field(default="1:1", alias="aspectRatio")

    @field_validator("aspect_ratio", mode="before")
    @classmethod
    def _lenient_aspect_ratio(cls, value: Any) -> Any:
        # Anything that is not a known ratio string ends up as a square image.
        return value if isinstance(value, str) else None


class ClientDisconnected(Exception):
    pass


def build_pipeline(config: Settings) -> AdPipeline:
    """Wire the vendor clients from settings; raises ConfigurationError when credentials are missing."""
    config.require_credentials()

    openai_provider = OpenAIAdProvider(api_key=config.openai_api_key, config=config)
    research: Any = openai_provider
    if config.research_provider == "gemini":
        research = GeminiResearchProvider(api_key=config.gemini_api_key, config=config)

    manifests = RunManifestStore(config.run_manifest_dir) if config.run_manifest_dir else None
    return AdPipeline(
        research=research,
        copywriter=openai_provider,
        image_editor=openai_provider,
        store=SupabaseObjectStore(url=config.supabase_url, key=config.supabase_key),
        config=config,
        manifests=manifests,
    )


def create_app(pipeline: AdPipeline | None = None, config: Settings | None = None) -> FastAPI:
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "pipeline", None) is None:
            # Fail at startup, not on the first request.
            app.state.pipeline = build_pipeline(config)
            logger.info("Ad pipeline ready (research provider: %s)", config.research_provider)
        yield

    app = FastAPI(title="Craft ad generation", lifespan=lifespan)
    app.state.pipeline = pipeline

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(_describe_validation_error(e) for e in exc.errors())
        return JSONResponse({"error": f"Invalid request body: {problems}"}, status_code=400)

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/generate-ad")
    @app.post("/api/generate-ad")
    async def generate_ad(body: GenerateAdBody, request: Request):
        ad_pipeline: AdPipeline | None = request.app.state.pipeline
        if ad_pipeline is None:
            return JSONResponse({"error": "Ad generation is not configured"}, status_code=503)

        ad_request = AdRequest(
            title=body.title,
            description=body.description,
            image_data_url=body.image_base64,
            aspect_ratio=body.aspect_ratio,
        )
        try:
            result = await _run_until_disconnect(request, ad_pipeline.run(ad_request))
        except ClientDisconnected:
            logger.warning("Client disconnected; ad generation cancelled")
            return JSONResponse({"error": "Client closed request"}, status_code=499)
        except Exception as exc:
            logger.exception("Ad generation crashed")
            return JSONResponse({"error": f"Ad generation failed: {exc}"}, status_code=500)

        if isinstance(result, Err):
            status = result.error.status_code
            message = result.message if status < 500 else f"Ad generation failed: {result.message}"
            return JSONResponse({"error": message}, status_code=status)

        record = result.value
        return {"adCopy": record.ad_copy, "imageUrl": record.image_url}

    return app


async def _run_until_disconnect(request: Request, work: Awaitable[T]) -> T:
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_S)
            if done:
                return task.result()
            if await request.is_disconnected():
                raise ClientDisconnected()
    finally:
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)


def _describe_validation_error(err: dict[str, Any]) -> str:
    loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
    msg = err.get("msg", "invalid value")
    return f"{loc}: {msg}" if loc else msg


app = create_app()
