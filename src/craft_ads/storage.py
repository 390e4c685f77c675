from __future__ import annotations

import asyncio
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from craft_ads.errors import StorageUrlResolutionError, StorageWriteError

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _safe_filename(name: str) -> str:
    # Keep run ids from escaping the manifest directory.
    return os.path.basename(name).replace("..", "_")


class SupabaseObjectStore:
    """Object store backed by Supabase Storage buckets."""

    def __init__(self, url: str | None = None, key: str | None = None, client: Any = None) -> None:
        if client is None:
            from supabase import create_client

            client = create_client(url, key)
        self.client = client

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        *,
        content_type: str,
        cache_control: str,
        overwrite: bool = False,
    ) -> str:
        file_options = {
            "content-type": content_type,
            "cache-control": cache_control,
            "upsert": "true" if overwrite else "false",
        }
        # The supabase client is synchronous; keep it off the event loop.
        try:
            res = await asyncio.to_thread(
                lambda: self.client.storage.from_(bucket).upload(path, data, file_options)
            )
        except Exception as exc:
            raise StorageWriteError(f"Failed to upload image to storage: {exc}") from exc

        stored = getattr(res, "path", None) or path
        logger.info("Uploaded %d bytes to %s/%s", len(data), bucket, stored)
        return stored

    async def get_public_url(self, bucket: str, path: str) -> str | None:
        try:
            url = await asyncio.to_thread(lambda: self.client.storage.from_(bucket).get_public_url(path))
        except Exception as exc:
            raise StorageUrlResolutionError(f"Could not resolve public URL for {bucket}/{path}: {exc}") from exc
        if isinstance(url, str):
            # Some client versions append an empty query string.
            return url.rstrip("?") or None
        return None


class RunManifestStore:
    """Writes one JSON manifest per pipeline run for later inspection."""

    def __init__(self, root_dir: Path | str) -> None:
        self.root_dir = Path(root_dir).resolve()
        self.root_dir.mkdir(parents=True, exist_ok=True)

    def write_run_manifest(self, manifest: dict[str, Any]) -> Path:
        run_id = _safe_filename(str(manifest.get("run_id") or "")) or uuid.uuid4().hex[:12]
        path = self.root_dir / f"run_{run_id}.json"
        manifest = dict(manifest)
        manifest["run_id"] = run_id
        manifest.setdefault("created_at", _now_iso())
        path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        return path

    def read_run_manifest(self, run_id: str) -> dict[str, Any]:
        return json.loads((self.root_dir / f"run_{_safe_filename(run_id)}.json").read_text("utf-8"))
