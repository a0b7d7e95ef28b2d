"""Process-environment settings (credential and ``.env`` file)."""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvSettings(BaseSettings):
    """Values read from the environment or a ``.env`` file in the working dir."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    telegram_token: SecretStr | None = Field(
        default=None, description="Bot API token used to authenticate every call"
    )
