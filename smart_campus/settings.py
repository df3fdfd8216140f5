from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Keep defaults *local* and deterministic so the service runs without setup.
    - Allow overriding via env vars (CAMPUS_*) for real deployments.
    """

    model_config = SettingsConfigDict(env_prefix="CAMPUS_", extra="ignore")

    db_url: str | None = None
    policy_config_path: str | None = None
    log_level: str = "INFO"

    # "development" exposes deny reasons in 403 responses; "production" hides them.
    environment: Literal["development", "production"] = "development"

    # When set, bearer tokens are HS256 JWTs; otherwise the demo "Bearer <user id>" scheme is used.
    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"

    # Write audit entries from a background worker instead of inline.
    audit_async: bool = False

    @property
    def expose_deny_reasons(self) -> bool:
        return self.environment == "development"

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "campus.db"
        return f"sqlite:///{db_path}"

    def resolved_policy_config_path(self) -> Path:
        if self.policy_config_path:
            return Path(self.policy_config_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "policy.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
