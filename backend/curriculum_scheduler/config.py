import os
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: Optional[str] = Field(None, alias="CURRICULUM_DATABASE_URL")
    database_pool_size: int = Field(10, alias="CURRICULUM_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="CURRICULUM_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="CURRICULUM_DATABASE_ECHO")
    content_service_url: str = Field("", alias="CURRICULUM_CONTENT_SERVICE_URL")
    launch_return_url: Optional[str] = Field(None, alias="CURRICULUM_LAUNCH_RETURN_URL")
    default_timezone: str = Field("Europe/Dublin", alias="CURRICULUM_DEFAULT_TIMEZONE")
    http_timeout_seconds: float = Field(15.0, alias="CURRICULUM_HTTP_TIMEOUT_SECONDS")
    notification_subject: str = Field("MOC course Notification", alias="CURRICULUM_NOTIFICATION_SUBJECT")
    notification_sender: Optional[str] = Field(None, alias="CURRICULUM_NOTIFICATION_SENDER")
    sweep_workers: int = Field(4, ge=1, alias="CURRICULUM_SWEEP_WORKERS")
    max_cycles: int = Field(50, ge=1, alias="CURRICULUM_MAX_CYCLES")
    content_map_path: Optional[str] = Field(None, alias="CURRICULUM_CONTENT_MAP_PATH")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid scheduler configuration: {exc}") from exc
