import pytest
from pydantic import ValidationError

from avalon.logic.enums import TeamSelectionTimeoutPolicy
from avalon.server.settings import GameServerSettings


class TestGameServerSettings:
    def test_cors_origins_json_array(self, monkeypatch):
        monkeypatch.setenv("AVALON_CORS_ORIGINS", '["http://a.com","http://b.com"]')
        settings = GameServerSettings()
        assert settings.cors_origins == ["http://a.com", "http://b.com"]

    def test_cors_origins_csv(self, monkeypatch):
        monkeypatch.setenv("AVALON_CORS_ORIGINS", "http://a.com, http://b.com")
        settings = GameServerSettings()
        assert settings.cors_origins == ["http://a.com", "http://b.com"]

    def test_cors_origins_blank_raises(self, monkeypatch):
        monkeypatch.setenv("AVALON_CORS_ORIGINS", "  ")
        with pytest.raises(ValidationError, match="cors_origins"):
            GameServerSettings()

    def test_cors_origins_empty_list_allowed(self):
        assert GameServerSettings(cors_origins=[]).cors_origins == []

    def test_max_capacity_zero_rejected(self):
        with pytest.raises(ValidationError, match="max_capacity"):
            GameServerSettings(max_capacity=0)

    def test_room_ttl_minimum(self):
        with pytest.raises(ValidationError, match="room_ttl_seconds"):
            GameServerSettings(room_ttl_seconds=10)

    def test_log_dir_empty_rejected(self):
        with pytest.raises(ValidationError, match="log_dir"):
            GameServerSettings(log_dir="")

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("AVALON_ENDED_GAME_TTL_SECONDS", raising=False)
        settings = GameServerSettings()
        assert settings.ended_game_ttl_seconds == 60
        assert settings.require_full_room is True
        assert settings.team_selection_timeout == TeamSelectionTimeoutPolicy.REJECT

    def test_timings_from_env(self, monkeypatch):
        monkeypatch.setenv("AVALON_NIGHT_SECONDS", "2.5")
        monkeypatch.setenv("AVALON_TEAM_SELECTION_TIMEOUT", "none")
        settings = GameServerSettings()
        assert settings.night_seconds == 2.5
        assert settings.team_selection_timeout == TeamSelectionTimeoutPolicy.NONE

    def test_game_settings_carries_timings(self):
        settings = GameServerSettings(
            night_seconds=1,
            vote_reveal_seconds=2,
            quest_reveal_seconds=3,
            team_selection_seconds=30,
            team_selection_timeout=TeamSelectionTimeoutPolicy.NONE,
        )
        game_settings = settings.game_settings()
        assert game_settings.night_seconds == 1
        assert game_settings.vote_reveal_seconds == 2
        assert game_settings.quest_reveal_seconds == 3
        assert game_settings.team_selection_seconds == 30
        assert game_settings.team_selection_timeout == TeamSelectionTimeoutPolicy.NONE

    def test_negative_timing_rejected(self):
        with pytest.raises(ValidationError, match="vote_reveal_seconds"):
            GameServerSettings(vote_reveal_seconds=-1)
