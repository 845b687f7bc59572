"""Server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class TicTacToeServerSettings(BaseSettings):
    model_config = {"env_prefix": "TTT_"}

    log_dir: str | None = None
    cors_origins: list[str] = []
    # None keeps all state in memory; a directory enables JSON file stores.
    data_dir: str | None = None

    rate_limit_enabled: bool = True
    requests_per_minute: int = Field(default=60, ge=1)
    requests_per_hour: int = Field(default=1000, ge=1)
    trust_forwarded_for: bool = True

    max_request_body_size: int = Field(default=4096, ge=64)
    default_leaderboard_limit: int = Field(default=10, ge=1)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v, allow_empty=True)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings)
