import logging
from typing import Annotated, List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Read from the environment (APP_ENV, JWT_ACCESS_SECRET, ...) or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: Literal["development", "production"] = "development"
    port: int = 8000
    log_level: str = "INFO"

    database_url: str = "mongodb://localhost:27017"
    database_name: str = "garments"
    db_connect_retries: int = Field(5, ge=1)
    db_retry_delay_seconds: float = Field(2.0, ge=0)

    jwt_access_secret: str = "access-secret-change"
    jwt_refresh_secret: str = "refresh-secret-change"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(15, ge=1)
    refresh_token_expire_days: int = Field(7, ge=1)

    bcrypt_rounds: int = Field(12, ge=4, le=31)
    max_page_limit: int = Field(100, ge=1)
    # CORS_ORIGINS is a comma separated list, not JSON
    cors_origins: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["*"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, v):
        if isinstance(v, str):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
