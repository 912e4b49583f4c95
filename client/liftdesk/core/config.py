from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    project_name: str = "LiftDesk Client"
    api_base_url: str = Field(
        default="http://localhost:8081/api",
        description="Base URL of the maintenance backend, including the /api prefix",
    )
    request_timeout_seconds: float = 30.0
    token_store_url: str = Field(
        default="sqlite:///./liftdesk_tokens.db",
        description="SQLModel compatible database URI for the persisted token pair",
    )
    login_path: str = "/login"
    min_completion_photos: int = 4
    token_refresh_leeway_seconds: int = 120  # refresh when less than 2 minutes remain
    token_refresh_check_interval_seconds: int = 30
    jwt_verify_key: Optional[str] = Field(
        default=None, description="When set, access token signatures are verified with this key"
    )
    jwt_algorithms: List[str] = Field(default_factory=lambda: ["HS256", "HS384", "HS512", "RS256"])

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "LIFTDESK_"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
