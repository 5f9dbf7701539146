"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from sermon_audio.errors import ConfigurationError


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables.

    Values are validated when an operation needs them rather than at startup,
    so a deployment that never submits through the store does not need the
    jobs table settings, and so on.
    """

    submission_mode: Literal["api", "store"] = "api"
    debug_mode: bool = False

    aws_credentials_file_path: str | None = None
    site_token_file_path: str | None = None
    # Kept as raw strings so bad values surface as ConfigurationError on use.
    connect_timeout: str | None = None
    endpoint_timeout: str | None = None

    audio_s3_aws_region: str | None = None
    audio_bucket_name: str | None = None
    unprocessed_audio_uri_prefix: str | None = None
    processed_audio_uri_prefix: str | None = None
    processed_audio_key_prefix: str | None = None

    job_submission_endpoint: str | None = None
    job_submission_endpoint_aws_region: str | None = None
    cleaning_job_results_endpoint: str | None = None
    cleaning_job_results_endpoint_aws_region: str | None = None
    transcription_job_results_endpoint: str | None = None
    transcription_job_results_endpoint_aws_region: str | None = None

    transcription_s3_aws_region: str | None = None
    transcription_bucket_name: str | None = None
    transcription_key_prefix: str | None = None

    jobs_table_name: str | None = None
    jobs_db_aws_region: str | None = None

    fallback_owner_id: str | None = None

    model_config = SettingsConfigDict(env_prefix="SERMON_AUDIO_", extra="ignore")

    def require(self, name: str) -> str:
        """Return a non-empty string setting or raise ConfigurationError."""
        value = getattr(self, name)
        if value is None or not str(value).strip():
            raise ConfigurationError(
                f'The "{name}" setting is missing or empty.',
                details={"setting": name},
            )
        return str(value)

    def connect_timeout_seconds(self) -> int | None:
        return parse_timeout("connect_timeout", self.connect_timeout)

    def endpoint_timeout_seconds(self) -> int | None:
        return parse_timeout("endpoint_timeout", self.endpoint_timeout)


def parse_timeout(name: str, raw: str | int | None) -> int | None:
    """Parse an optional timeout setting; empty means "use the transport default"."""
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    try:
        value = int(text)
    except ValueError:
        value = 0
    if value <= 0:
        raise ConfigurationError(
            f'The "{name}" setting is not a positive integer.',
            details={"setting": name},
        )
    return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
