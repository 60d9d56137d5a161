"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from TWO sources (in priority order):
#
#   1. **Environment variables**, e.g. GEMINI_API_KEY=AIza...
#   2. **.env file** in the project root (local development)
#
# Field `gemini_api_key` maps to env var `GEMINI_API_KEY`.  List fields
# (url_allowed_hosts) accept a JSON array in the environment:
#   URL_ALLOWED_HOSTS='["storage.googleapis.com", "my-bucket.example.net"]'
#
# The size ceilings below are exact byte counts; the thin-server upload
# ceiling is the hosting platform's request payload limit, not a
# provider limit.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

_MB = 1024 * 1024

DEFAULT_ALLOWED_HOSTS: list[str] = [
    "storage.googleapis.com",
    "s3.amazonaws.com",
    "blob.core.windows.net",
    "dl.dropboxusercontent.com",
    "public.blob.vercel-storage.com",
    "r2.cloudflarestorage.com",
]


class Settings(BaseSettings):
    """mediaingest application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Processing provider (Gemini File API) ===
    # Empty string = "not configured"; ingestion jobs fail with a
    # ConfigurationError and /health reports the provider unavailable.
    gemini_api_key: str = ""
    provider_base_url: str = "https://generativelanguage.googleapis.com"
    provider_timeout_seconds: float = 300.0

    # === Readiness polling ===
    poll_interval_seconds: float = 3.0
    poll_max_attempts: int = 60

    # === Size ceilings (bytes) ===
    upload_max_bytes: int = int(4.5 * _MB)
    url_import_max_bytes: int = 100 * _MB

    # === URL import ===
    url_allowed_hosts: list[str] = list(DEFAULT_ALLOWED_HOSTS)
    url_fetch_timeout_seconds: float = 120.0

    # === Direct-to-provider credentials ===
    credential_ttl_seconds: int = 900
    credential_cache_size: int = 1024

    # === Metadata store ===
    metadata_db_path: str = "data/files.db"

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def provider_configured(self) -> bool:
        """Return ``True`` when a provider API key is present."""
        return bool(self.gemini_api_key)
