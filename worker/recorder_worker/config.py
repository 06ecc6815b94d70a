from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_json: bool = True

    supabase_url: str
    supabase_service_role_key: str

    worker_poll_seconds: float = 30.0
    worker_batch_size: int = 10
    worker_max_attempts: int = 3
    supabase_claim_retries: int = 3
    supabase_claim_retry_base_seconds: float = 0.5

    schedule_window_minutes: int = Field(default=5, ge=1, le=60)

    summary_sentences: int = Field(default=3, ge=1, le=10)
    summary_max_key_points: int = Field(default=5, ge=1, le=5)
    summary_max_action_items: int = Field(default=5, ge=1, le=5)
    segment_gap_ms: int = Field(default=10_000, gt=0)

    mailjet_api_key: str = Field(validation_alias=AliasChoices("MAILJET_API_KEY", "MJ_APIKEY_PUBLIC"))
    mailjet_api_secret: str = Field(validation_alias=AliasChoices("MAILJET_API_SECRET", "MJ_APIKEY_PRIVATE"))
    mailjet_base_url: str = "https://api.mailjet.com"
    mailjet_from_email: str
    mailjet_from_name: str = "Meeting Recorder Team"
    mailjet_timeout_seconds: int = 20

    email_subject_prefix: str = "Meeting Notes"
    email_reply_to: str | None = None
    transcript_base_url: str | None = None

    @field_validator(
        "mailjet_api_key",
        "mailjet_api_secret",
        "mailjet_base_url",
        "mailjet_from_email",
        "mailjet_from_name",
        "email_subject_prefix",
        "email_reply_to",
        "transcript_base_url",
        mode="before",
    )
    @classmethod
    def _strip_env_strings(cls, value: object) -> object:
        if isinstance(value, str):
            trimmed = value.strip()
            return trimmed or None
        return value

    @model_validator(mode="after")
    def _validate_mailjet_credentials(self) -> WorkerSettings:
        if self.mailjet_api_key == self.mailjet_api_secret:
            raise ValueError("MAILJET_API_KEY and MAILJET_API_SECRET must be different values")
        return self

    def transcript_url(self, meeting_id: str) -> str | None:
        if not self.transcript_base_url:
            return None
        return f"{self.transcript_base_url.rstrip('/')}/meetings/{meeting_id}"


@lru_cache(maxsize=1)
def get_settings() -> WorkerSettings:
    return WorkerSettings()
