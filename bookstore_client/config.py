from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    API_BASE_URL: str
    ENV: Literal["local", "staging", "production"] = "local"

    REQUEST_TIMEOUT_SECONDS: float = 10.0

    # OTP session defaults, used when the backend omits them
    OTP_LENGTH: int = 6
    DEFAULT_EXPIRES_IN_SECONDS: int = 600
    RESEND_COOLDOWN_SECONDS: int = 60
    MAX_VERIFY_ATTEMPTS: int = 3
    TICK_INTERVAL_SECONDS: float = 1.0

    DEFAULT_COUNTRY_CODE: str = "880"

    LOG_LEVEL: str = "INFO"

    @property
    def api_base_url(self) -> str:
        return self.API_BASE_URL.rstrip("/")

    @property
    def strict_transitions(self) -> bool:
        return self.ENV != "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"


@lru_cache
def get_settings() -> Settings:
    return Settings()
