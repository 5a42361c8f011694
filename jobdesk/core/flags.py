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
    # OFF → Dev user injected (user_id="dev-user"). No token needed.

    # ── Realtime ─────────────────────────────────────────────────────
    use_redis: bool = Field(default=False, alias="FF_USE_REDIS")
    # ON  → Redis pub/sub so other views refresh when the assistant
    #       touches contacts/companies/applications. Needs REDIS_URL.
    # OFF → Notifications silently skipped.

    # ── LLM Provider ─────────────────────────────────────────────────
    llm_provider: str = Field(default="gemini", alias="FF_LLM_PROVIDER")
    # "gemini" → Google Gemini through its OpenAI-compatible endpoint. Needs GEMINI_API_KEY.
    # "openai" → Direct OpenAI. Needs OPENAI_API_KEY.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
