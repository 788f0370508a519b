"""Game server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from avalon.logic.enums import TeamSelectionTimeoutPolicy
from avalon.logic.settings import GameSettings
from shared.validators import StringListEnvSettingsSource, parse_cors_origins

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class GameServerSettings(BaseSettings):
    model_config = {"env_prefix": "AVALON_"}

    max_capacity: int = Field(default=100, ge=1)  # lobby rooms + running games
    log_dir: str = Field(default="backend/logs/avalon", min_length=1)
    cors_origins: list[str] = ["http://localhost:3000"]
    room_ttl_seconds: int = Field(default=3600, ge=60)  # 1 hour default, min 60s
    ended_game_ttl_seconds: float = Field(default=60, ge=0)
    require_full_room: bool = True

    # engine pacing, passed to every new game
    night_seconds: float = Field(default=5.0, ge=0)
    vote_reveal_seconds: float = Field(default=4.0, ge=0)
    quest_reveal_seconds: float = Field(default=5.0, ge=0)
    team_selection_seconds: float = Field(default=180.0, gt=0)
    team_selection_timeout: TeamSelectionTimeoutPolicy = TeamSelectionTimeoutPolicy.REJECT

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_cors_origins(v)

    def game_settings(self) -> GameSettings:
        return GameSettings(
            night_seconds=self.night_seconds,
            vote_reveal_seconds=self.vote_reveal_seconds,
            quest_reveal_seconds=self.quest_reveal_seconds,
            team_selection_seconds=self.team_selection_seconds,
            team_selection_timeout=self.team_selection_timeout,
        )

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
