"""
Tests for ConfigStore and ScoringConfig.
"""

import json
from dataclasses import FrozenInstanceError

import pytest

from ctf_scoring.config import ConfigStore, ScoringConfig


class TestScoringConfig:
    """Tests for the immutable snapshot."""

    def test_defaults(self, scoring_config):
        assert scoring_config.first_blood_bonus == 50
        assert scoring_config.max_team_size == 4
        assert scoring_config.dynamic_scoring is True
        assert scoring_config.difficulty_multiplier("hard") == 1.6
        assert scoring_config.category_multiplier("crypto") == 1.2

    def test_unknown_lookups_are_neutral(self, scoring_config):
        assert scoring_config.difficulty_multiplier("legendary") == 1.0
        assert scoring_config.difficulty_multiplier(None) == 1.0
        assert scoring_config.category_multiplier("stego") == 1.0
        assert scoring_config.category_multiplier("") == 1.0

    def test_lookups_ignore_case(self, scoring_config):
        assert scoring_config.category_multiplier("PWN") == 1.3

    def test_clamps_inconsistent_values(self):
        config = ScoringConfig(first_blood_bonus=-10, max_team_size=0)
        assert config.first_blood_bonus == 0
        assert config.max_team_size == 1

    def test_drops_invalid_multipliers(self):
        config = ScoringConfig(category_multipliers={"web": "fast", "pwn": -1, "misc": 0.5})
        assert dict(config.category_multipliers) == {"misc": 0.5}
        assert config.category_multiplier("pwn") == 1.0

    def test_snapshot_is_immutable(self, scoring_config):
        with pytest.raises(FrozenInstanceError):
            scoring_config.first_blood_bonus = 100
        with pytest.raises(TypeError):
            scoring_config.category_multipliers["web"] = 5.0

    def test_from_dict_falls_back_on_bad_types(self):
        config = ScoringConfig.from_dict(
            {"first_blood_bonus": "lots", "speed_bonus": "yes", "max_team_size": 6}
        )
        assert config.first_blood_bonus == 50
        assert config.speed_bonus is True
        assert config.max_team_size == 6


class TestConfigStore:
    """Tests for loading, overriding and updating configuration."""

    def test_creates_default_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("FIRST_BLOOD_BONUS", raising=False)
        path = tmp_path / "scoring_config.json"
        store = ConfigStore(str(path))

        assert path.exists()
        assert json.loads(path.read_text())["scoring"]["first_blood_bonus"] == 50
        assert store.current_config().first_blood_bonus == 50

    def test_merges_file_over_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SPEED_BONUS", raising=False)
        path = tmp_path / "scoring_config.json"
        path.write_text(
            json.dumps(
                {
                    "ctf_name": "Test CTF",
                    "scoring": {
                        "speed_bonus": False,
                        "category_multipliers": {"crypto": 1.5},
                    },
                }
            )
        )
        store = ConfigStore(str(path))
        snapshot = store.current_config()

        assert store.get("ctf_name") == "Test CTF"
        assert snapshot.speed_bonus is False
        assert snapshot.dynamic_scoring is True
        # Tables are replaced, not merged
        assert dict(snapshot.category_multipliers) == {"crypto": 1.5}

    def test_invalid_json_uses_defaults(self, tmp_path):
        path = tmp_path / "scoring_config.json"
        path.write_text("{not json")
        store = ConfigStore(str(path))
        assert store.current_config().max_team_size == 4

    def test_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FIRST_BLOOD_BONUS", "75")
        monkeypatch.setenv("DYNAMIC_SCORING", "off")
        monkeypatch.setenv("MAX_TEAM_SIZE", "6")
        store = ConfigStore(str(tmp_path / "scoring_config.json"))
        snapshot = store.current_config()

        assert snapshot.first_blood_bonus == 75
        assert snapshot.dynamic_scoring is False
        assert snapshot.max_team_size == 6

    def test_env_values_are_clamped(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FIRST_BLOOD_BONUS", "-20")
        monkeypatch.setenv("MAX_TEAM_SIZE", "0")
        store = ConfigStore(str(tmp_path / "scoring_config.json"))

        assert store.get("scoring", "first_blood_bonus") == 0
        assert store.current_config().max_team_size == 1

    def test_invalid_toggle_uses_default(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SPEED_BONUS", "sometimes")
        store = ConfigStore(str(tmp_path / "scoring_config.json"))
        assert store.current_config().speed_bonus is True

    def test_update_publishes_new_snapshot(self, config_store):
        before = config_store.current_config()
        after = config_store.update({"first_blood_bonus": 100, "speed_bonus": False}, save=False)

        assert after is config_store.current_config()
        assert after.first_blood_bonus == 100
        assert after.speed_bonus is False
        # A snapshot taken earlier is untouched
        assert before.first_blood_bonus == 50
        assert before.speed_bonus is True

    def test_update_clamps(self, config_store):
        snapshot = config_store.update({"first_blood_bonus": -5, "max_team_size": -3}, save=False)
        assert snapshot.first_blood_bonus == 0
        assert snapshot.max_team_size == 1

    def test_update_clamps_float_values(self, config_store):
        snapshot = config_store.update(
            {"first_blood_bonus": -5.0, "max_team_size": 0.0}, save=False
        )
        assert snapshot.first_blood_bonus == 0
        assert snapshot.max_team_size == 1

    def test_update_accepts_float_values(self, config_store):
        snapshot = config_store.update(
            {"first_blood_bonus": 75.0, "max_team_size": 5.6}, save=False
        )
        assert snapshot.first_blood_bonus == 75
        assert snapshot.max_team_size == 6
        assert config_store.get("scoring", "first_blood_bonus") == 75

    def test_update_saves_file(self, tmp_path):
        path = tmp_path / "scoring_config.json"
        store = ConfigStore(str(path))
        store.update({"max_team_size": 5})

        assert json.loads(path.read_text())["scoring"]["max_team_size"] == 5
        assert ConfigStore(str(path)).current_config().max_team_size == 5

    def test_get_missing_key(self, config_store):
        assert config_store.get("scoring", "nope") is None
        assert config_store.get("nope", "deeper") is None

    def test_defaults_are_not_shared(self, config_store):
        config_store.update({"difficulty_multipliers": {"easy": 3.0}}, save=False)
        assert ConfigStore.DEFAULT_CONFIG["scoring"]["difficulty_multipliers"]["easy"] == 1.0
