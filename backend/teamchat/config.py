from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_env: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./teamchat.db"
    session_secret_key: str | None = None
    session_algorithm: str = "HS256"
    session_cookie_name: str = "teamchat.session-token"
    session_resolver: Literal["jwt", "http"] = "jwt"
    # Remote session endpoint; defaults to `<request origin>/auth/session`.
    auth_session_url: str | None = None
    cors_origins: str = "http://localhost:5173"
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _require_secret_outside_development(self) -> "Settings":
        if self.app_env != "development" and not self.session_secret_key:
            raise ValueError("SESSION_SECRET_KEY is required outside development environment")
        if not self.session_secret_key:
            self.session_secret_key = "dev-insecure-session-secret"
        return self

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
