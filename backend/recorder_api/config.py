from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "meeting-recorder-api"
    log_level: str = "INFO"
    log_json: bool = True

    supabase_url: str
    supabase_service_role_key: str

    cors_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:5173"]
    )
    max_audio_chunk_kb: int = 512

    translation_target_language: str = "en-GB"
    translation_base_url: str = "https://translate.googleapis.com/translate_a/single"
    translation_timeout_seconds: float = 10.0

    mock_transcriber_seed: int | None = None
    mock_transcriber_emit_probability: float = Field(default=0.3, ge=0.0, le=1.0)

    oauth_state_secret: str | None = None
    provider_timeout_seconds: float = 20.0

    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = "http://localhost:5173/auth/google/callback"

    zoom_client_id: str = ""
    zoom_client_secret: str = ""
    zoom_redirect_uri: str = "http://localhost:5173/auth/zoom/callback"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: object) -> list[str]:
        if value is None:
            return ["http://localhost:5173"]
        if isinstance(value, str):
            items = [item.strip() for item in value.split(",") if item.strip()]
            return items or ["http://localhost:5173"]
        if isinstance(value, list):
            return [str(item).strip() for item in value if str(item).strip()]
        raise ValueError("Invalid CORS_ORIGINS value")

    @field_validator(
        "google_client_id",
        "google_client_secret",
        "zoom_client_id",
        "zoom_client_secret",
        mode="before",
    )
    @classmethod
    def _strip_secrets(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @property
    def state_secret(self) -> str:
        return self.oauth_state_secret or self.supabase_service_role_key


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
