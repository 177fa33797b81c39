from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # `.env.prod` takes priority over `.env`
        env_file=(".env", ".env.prod")
    )

    # JWT settings
    jwt_secret: str = "devconnector-local-secret"
    jwt_algorithm: str = "HS256"
    jwt_expiration_hours: int = 1000

    # Header the client puts the token in
    auth_header_name: str = "x-auth-token"

    # GitHub repository lookup
    github_api_url: str = "https://api.github.com"
    github_client_id: Optional[str] = None
    github_client_secret: Optional[str] = None
    github_timeout_seconds: float = 10.0

    cors_origins: List[str] = [
        "http://localhost",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]


@lru_cache()
def get_settings() -> Settings:
    return Settings()
