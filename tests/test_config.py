"""Tests for settings loading and credential checks"""

import pytest

from craft_ads.config import Settings
from craft_ads.errors import ConfigurationError

CREDENTIAL_VARS = (
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "SUPABASE_SERVICE_ROLE_KEY",
    "NEXT_PUBLIC_SUPABASE_URL",
    "NEXT_PUBLIC_SUPABASE_ANON_KEY",
    "RESEARCH_PROVIDER",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in CREDENTIAL_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    """Tests for Settings"""

    def test_defaults(self, clean_env):
        s = Settings(_env_file=None)
        assert s.storage_bucket == "generated-ads"
        assert s.storage_prefix == "public"
        assert s.storage_cache_control == "3600"
        assert s.research_provider == "openai"
        assert s.max_image_bytes == 10 * 1024 * 1024

    def test_reads_next_public_aliases(self, clean_env):
        clean_env.setenv("NEXT_PUBLIC_SUPABASE_URL", "https://p.supabase.co")
        clean_env.setenv("NEXT_PUBLIC_SUPABASE_ANON_KEY", "anon")
        s = Settings(_env_file=None)
        assert s.supabase_url == "https://p.supabase.co"
        assert s.supabase_key == "anon"

    def test_require_credentials_lists_all_missing(self, clean_env):
        with pytest.raises(ConfigurationError) as exc_info:
            Settings(_env_file=None).require_credentials()
        message = str(exc_info.value)
        for name in ("OPENAI_API_KEY", "SUPABASE_URL", "SUPABASE_KEY"):
            assert name in message
        assert "GEMINI_API_KEY" not in message

    def test_gemini_research_needs_gemini_key(self, clean_env):
        s = Settings(
            _env_file=None,
            openai_api_key="sk",
            supabase_url="https://p.supabase.co",
            supabase_key="k",
            research_provider="gemini",
        )
        with pytest.raises(ConfigurationError) as exc_info:
            s.require_credentials()
        assert "GEMINI_API_KEY" in str(exc_info.value)

    def test_unknown_research_provider(self, clean_env):
        s = Settings(
            _env_file=None,
            openai_api_key="sk",
            supabase_url="https://p.supabase.co",
            supabase_key="k",
            research_provider="mystery",
        )
        with pytest.raises(ConfigurationError):
            s.require_credentials()

    def test_complete_credentials(self, config):
        config.require_credentials()
