"""Client configuration with strict environment validation."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE if _ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # --- Backend ---
    API_BASE_URL: str = "http://127.0.0.1:8000/api"
    REQUEST_TIMEOUT_SECONDS: float = 15.0
    USER_AGENT: str = "storefront-cart-engine"

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # --- Persistent storage ---
    # Sin STORAGE_PATH se usa un almacenamiento en memoria (no sobrevive reinicios)
    STORAGE_PATH: Path | None = None
    CREDENTIAL_STORAGE_KEY: str = Field(default="auth_token", min_length=1)
    GUEST_SESSION_STORAGE_KEY: str = Field(default="guest_session_id", min_length=1)
    GUEST_SESSION_PREFIX: str = "guest"

    @field_validator("API_BASE_URL")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("API_BASE_URL must be an http(s) URL.")
        return value.rstrip("/")

    @field_validator("REQUEST_TIMEOUT_SECONDS")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("REQUEST_TIMEOUT_SECONDS must be positive.")
        return value

    @field_validator("CREDENTIAL_STORAGE_KEY", "GUEST_SESSION_STORAGE_KEY")
    @classmethod
    def validate_storage_key(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Storage keys must not be blank.")
        return value.strip()


settings = Settings()
