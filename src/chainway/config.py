from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAX_RESPONSE_SIZE = 6 * 1024 * 1024
DEFAULT_TIMEOUT_MS = 29000

DEFAULT_SECURITY_HEADERS: dict[str, str] = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Content-Security-Policy": "default-src 'none'",
    "Cache-Control": "no-store, max-age=0",
    "Pragma": "no-cache",
}


class Settings(BaseSettings):
    app_env: str = "development"
    log_level: str = "info"

    max_response_size: int = Field(default=DEFAULT_MAX_RESPONSE_SIZE, gt=0)
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)

    security_headers: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_SECURITY_HEADERS)
    )
    # None means no allow-list at all; [] is an allow-list that admits nobody.
    cors_origin_whitelist: list[str] | None = None

    model_config = SettingsConfigDict(
        env_prefix="CHAINWAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().lower()


settings = Settings()
