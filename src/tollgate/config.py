from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float | None = None
    redis_connect_timeout: float | None = None
    rate_limit_key_prefix: str = Field(default="ratelimit", min_length=1)
    log_level: str = "INFO"
    log_json: bool = True

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("rate_limit_key_prefix")
    @classmethod
    def _no_whitespace(cls, value: str) -> str:
        if any(ch.isspace() for ch in value):
            raise ValueError("key prefix cannot contain whitespace")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
