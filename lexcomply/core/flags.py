"""
Central feature flags. One file controls every external dependency.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the system uses a local fallback. Nothing crashes.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Auth ─────────────────────────────────────────────────────────
    use_auth0: bool = Field(default=True, alias="FF_USE_AUTH0")
    # ON  → JWT validated via Auth0 JWKS. Needs AUTH0_DOMAIN, AUTH0_AUDIENCE.
    # OFF → Dev principal (DEV_USER_ID) injected. No token needed.

    # ── Storage ──────────────────────────────────────────────────────
    use_s3: bool = Field(default=False, alias="FF_USE_S3")
    # ON  → Uploaded documents go to AWS S3. Needs AWS creds + S3_BUCKET_NAME.
    # OFF → Files saved to UPLOAD_DIR/{user_id}/.

    # ── Realtime ─────────────────────────────────────────────────────
    use_redis: bool = Field(default=True, alias="FF_USE_REDIS")
    # ON  → Document status changes published over Redis pub/sub. Needs REDIS_URL.
    # OFF → Notifications silently skipped.

    # ── OCR ──────────────────────────────────────────────────────────
    use_ocr: bool = Field(default=False, alias="FF_USE_OCR")
    # ON  → Scanned PDFs (no text layer) sent to AIML OCR. Needs AIML_API_KEY.
    # OFF → Only pdfplumber. Scanned PDFs fail extraction.

    # ── LLM Provider ─────────────────────────────────────────────────
    llm_provider: str = Field(default="openai", alias="FF_LLM_PROVIDER")
    # "openai" → Direct OpenAI (default). Needs OPENAI_API_KEY.
    # "gemini" → Google Gemini OpenAI-compatible endpoint. Needs GEMINI_API_KEY.
    # "aiml"   → AIML API proxy. Needs AIML_API_KEY.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
