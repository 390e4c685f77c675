from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from craft_ads.errors import ConfigurationError


class Settings(BaseSettings):
    # Loads keys from process env, and also from a local .env file for local runs.
    model_config = SettingsConfigDict(env_prefix="", extra="ignore", env_file=".env", env_file_encoding="utf-8")

    # Keys
    openai_api_key: str | None = None
    gemini_api_key: str | None = None
    supabase_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("supabase_url", "next_public_supabase_url"),
    )
    supabase_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("supabase_key", "supabase_service_role_key", "next_public_supabase_anon_key"),
    )

    # Storage
    storage_bucket: str = "generated-ads"
    storage_prefix: str = "public"
    storage_cache_control: str = "3600"

    # Models
    research_provider: str = "openai"  # openai|gemini
    openai_research_model: str = "gpt-4o-mini"
    openai_copy_model: str = "gpt-4o"
    openai_image_model: str = "gpt-image-1"
    gemini_vision_model: str = "gemini-2.0-flash"

    research_max_tokens: int = 300
    copy_max_tokens: int = 150
    copy_temperature: float = 0.8
    image_quality: str = "high"

    # Per-stage time bounds (seconds)
    research_timeout_s: float = 60.0
    copy_timeout_s: float = 60.0
    normalize_timeout_s: float = 30.0
    image_edit_timeout_s: float = 180.0
    storage_timeout_s: float = 60.0

    # Vendor retry policy (model calls only)
    vendor_max_attempts: int = 3
    vendor_retry_min_wait_s: float = 1.0
    vendor_retry_max_wait_s: float = 8.0

    # Upper bound on the decoded upload, checked before any vendor call.
    max_image_bytes: int = 10 * 1024 * 1024

    run_manifest_dir: str | None = None

    def require_credentials(self) -> None:
        missing: list[str] = []
        if not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if not self.supabase_url:
            missing.append("SUPABASE_URL")
        if not self.supabase_key:
            missing.append("SUPABASE_KEY")
        if self.research_provider == "gemini" and not self.gemini_api_key:
            missing.append("GEMINI_API_KEY")
        if self.research_provider not in ("openai", "gemini"):
            raise ConfigurationError(f"RESEARCH_PROVIDER must be 'openai' or 'gemini', got '{self.research_provider}'")
        if missing:
            raise ConfigurationError(f"Missing environment variables: {', '.join(missing)}")


settings = Settings()
