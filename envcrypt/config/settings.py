"""Application settings and configuration."""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from ``ENVCRYPT_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ENVCRYPT_",
        env_file=".envcrypt",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Storage layout
    env_dir: Path = Field(default=Path("envs"))
    secrets_dir: Path = Field(default=Path(".secrets"))
    env_file_template: str = Field(default=".env.{environment}")
    secret_file_template: str = Field(default=".secret.{environment}")

    # Designated credential fields
    credential_fields: List[str] = Field(
        default_factory=lambda: ["TOKEN_USERNAME", "TOKEN_PASSWORD"]
    )
    username_field: str = Field(default="TOKEN_USERNAME")
    password_field: str = Field(default="TOKEN_PASSWORD")

    # CI credential source
    running_in_ci: bool = Field(
        default=False,
        validation_alias=AliasChoices("ENVCRYPT_RUNNING_IN_CI", "CI"),
    )
    ci_variable_prefix: str = Field(default="CI_")

    # Key derivation
    kdf_timeout_seconds: float = Field(default=30.0, gt=0)

    # Logging
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)

    @field_validator("env_file_template", "secret_file_template")
    @classmethod
    def _require_environment_placeholder(cls, value: str) -> str:
        if "{environment}" not in value:
            raise ValueError("File name templates must contain '{environment}'")
        return value

    @field_validator("credential_fields")
    @classmethod
    def _require_credential_fields(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("At least one credential field must be designated")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build the process-wide settings once."""
    return Settings()
