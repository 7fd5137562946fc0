from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration sourced from environment variables."""

    model_config = SettingsConfigDict(env_file=(".env",), env_file_encoding="utf-8", extra="ignore")

    app_env: Literal["development", "production", "test"] = "development"
    # Logging
    log_level: str = "INFO"
    log_json: bool = False
    log_file: str | None = None
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_date_format: str = "%Y-%m-%d %H:%M:%S"
    # Connection profile store
    database_url: str = "sqlite+aiosqlite:///./kubepane.db"
    database_echo: bool = False
    # Optional Fernet key for encrypting stored certificate/key material
    # Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
    fernet_key: str | None = None
    # Transport policy for every cluster client
    connect_timeout_seconds: float = Field(default=1.0, gt=0, description="TCP/TLS connect timeout")
    read_timeout_seconds: float = Field(default=10.0, gt=0, description="Response read timeout")
    max_redirects: int = Field(default=5, ge=0, description="Maximum redirect hops per request")
    # Placeholders for a freshly created profile
    default_namespace: str = "default"
    new_profile_name: str = "new context"
    new_profile_server: str = "https://example.com"

    @computed_field
    @property
    def is_debug(self) -> bool:
        return self.app_env == "development"

    @property
    def request_timeout(self) -> tuple[float, float]:
        return (self.connect_timeout_seconds, self.read_timeout_seconds)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]
