import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


def _env(name: str, default: str | None = None):
    return Field(default_factory=lambda: os.getenv(name, default))


class Settings(BaseModel):
    # env values arrive as strings; validate_default coerces them to the field types
    model_config = ConfigDict(validate_default=True)

    service_url: str | None = _env("SERVICE_URL")
    gcp_project_id: str | None = _env("GCP_PROJECT_ID")
    service_name: str = _env("SERVICE_NAME", "docling-serve")
    region: str = _env("REGION", "us-central1")

    api_key: str | None = _env("DOCLING_API_KEY")
    identity_token: str | None = _env("DOCLING_IDENTITY_TOKEN")
    api_key_secret: str = _env("DOCLING_API_KEY_SECRET", "docling-api-key")

    poll_max_attempts: int = Field(default_factory=lambda: os.getenv("POLL_MAX_ATTEMPTS", "60"), ge=1)
    poll_interval_seconds: float = Field(default_factory=lambda: os.getenv("POLL_INTERVAL_SECONDS", "5"), ge=0)
    request_timeout_seconds: float = Field(default_factory=lambda: os.getenv("REQUEST_TIMEOUT_SECONDS", "30"), gt=0)
    output_dir: str = _env("OUTPUT_DIR", "out")

    smoke_source_url: str = _env("SMOKE_SOURCE_URL", "https://arxiv.org/pdf/2501.17887")
    smoke_max_attempts: int = Field(default_factory=lambda: os.getenv("SMOKE_MAX_ATTEMPTS", "30"), ge=1)

    log_level: str = _env("LOG_LEVEL", "INFO")


def get_settings() -> Settings:
    # re-read env each time (good for tests)
    return Settings()
