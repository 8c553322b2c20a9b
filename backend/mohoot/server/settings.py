"""Quiz server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from mohoot.logic.settings import DEFAULT_BASE_SCORE, GameSettings
from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class QuizServerSettings(BaseSettings):
    model_config = {"env_prefix": "QUIZ_"}

    max_capacity: int = Field(default=100, ge=1)  # live sessions
    log_dir: str = Field(default="backend/logs/quiz", min_length=1)
    cors_origins: list[str] = ["http://localhost:5173"]
    database_path: str = Field(default="backend/storage.db", min_length=1)
    session_ttl_seconds: int = Field(default=3600, ge=60)
    base_score: int = Field(default=DEFAULT_BASE_SCORE, ge=1)
    preroll_seconds: float = Field(default=2.0, ge=0)
    app_id: str = Field(default="default-app-id", min_length=1, pattern=r"^[a-zA-Z0-9_-]+$")

    # Shared with the identity provider, so it lives under AUTH_ rather than QUIZ_.
    player_ticket_secret: str = Field(validation_alias="AUTH_PLAYER_TICKET_SECRET", min_length=1)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    def game_settings(self) -> GameSettings:
        return GameSettings(base_score=self.base_score, preroll_ms=round(self.preroll_seconds * 1000))

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
