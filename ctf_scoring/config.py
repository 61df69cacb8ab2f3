"""
Configuration management for the scoring engine.
Supports both JSON file configuration and environment variable overrides.

The store hands out immutable ScoringConfig snapshots; an administrative
update builds a fresh snapshot and swaps it in, so a computation that already
holds a snapshot never sees a partially applied update.
"""

import copy
import json
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

DEFAULT_DIFFICULTY_MULTIPLIERS = {
    "easy": 1.0,
    "medium": 1.3,
    "hard": 1.6,
    "expert": 2.0,
}

DEFAULT_CATEGORY_MULTIPLIERS = {
    "crypto": 1.2,
    "pwn": 1.3,
    "reverse": 1.2,
    "web": 1.0,
    "forensics": 1.1,
    "misc": 1.0,
}

DEFAULT_FIRST_BLOOD_BONUS = 50
DEFAULT_MAX_TEAM_SIZE = 4


def _frozen_table(table: Mapping[str, float]) -> Mapping[str, float]:
    return MappingProxyType(dict(table))


@dataclass(frozen=True)
class ScoringConfig:
    """Competition-wide scoring knobs, frozen for the length of one computation."""

    difficulty_multipliers: Mapping[str, float] = field(
        default_factory=lambda: _frozen_table(DEFAULT_DIFFICULTY_MULTIPLIERS)
    )
    category_multipliers: Mapping[str, float] = field(
        default_factory=lambda: _frozen_table(DEFAULT_CATEGORY_MULTIPLIERS)
    )
    first_blood_bonus: int = DEFAULT_FIRST_BLOOD_BONUS
    dynamic_scoring: bool = True
    team_size_penalty: bool = True
    speed_bonus: bool = True
    max_team_size: int = DEFAULT_MAX_TEAM_SIZE

    def __post_init__(self) -> None:
        # Clamp rather than reject inconsistent values
        object.__setattr__(self, "first_blood_bonus", max(0, int(self.first_blood_bonus)))
        object.__setattr__(self, "max_team_size", max(1, int(self.max_team_size)))
        object.__setattr__(
            self,
            "difficulty_multipliers",
            _frozen_table(_clean_multipliers(self.difficulty_multipliers)),
        )
        object.__setattr__(
            self,
            "category_multipliers",
            _frozen_table(_clean_multipliers(self.category_multipliers)),
        )

    def difficulty_multiplier(self, difficulty: Optional[str]) -> float:
        if not difficulty:
            return 1.0
        return self.difficulty_multipliers.get(str(difficulty).lower(), 1.0)

    def category_multiplier(self, category: Optional[str]) -> float:
        if not category:
            return 1.0
        return self.category_multipliers.get(str(category).lower(), 1.0)

    @classmethod
    def from_dict(cls, scoring: Mapping[str, Any]) -> "ScoringConfig":
        """
        Build a snapshot from the "scoring" section of the configuration.

        @param scoring: Dictionary of scoring settings
        @return: Immutable ScoringConfig
        """
        defaults = cls()

        def _int(key: str, default: int) -> int:
            try:
                return int(scoring.get(key, default))
            except (TypeError, ValueError):
                return default

        def _bool(key: str, default: bool) -> bool:
            value = scoring.get(key, default)
            return value if isinstance(value, bool) else default

        def _table(key: str, default: Mapping[str, float]) -> Mapping[str, float]:
            value = scoring.get(key)
            return value if isinstance(value, Mapping) else default

        return cls(
            difficulty_multipliers=_table(
                "difficulty_multipliers", defaults.difficulty_multipliers
            ),
            category_multipliers=_table(
                "category_multipliers", defaults.category_multipliers
            ),
            first_blood_bonus=_int("first_blood_bonus", defaults.first_blood_bonus),
            dynamic_scoring=_bool("dynamic_scoring", defaults.dynamic_scoring),
            team_size_penalty=_bool("team_size_penalty", defaults.team_size_penalty),
            speed_bonus=_bool("speed_bonus", defaults.speed_bonus),
            max_team_size=_int("max_team_size", defaults.max_team_size),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dynamic_scoring": self.dynamic_scoring,
            "team_size_penalty": self.team_size_penalty,
            "speed_bonus": self.speed_bonus,
            "first_blood_bonus": self.first_blood_bonus,
            "max_team_size": self.max_team_size,
            "difficulty_multipliers": dict(self.difficulty_multipliers),
            "category_multipliers": dict(self.category_multipliers),
        }


def _whole_number(value: Any) -> Optional[int]:
    """Integer value of an int or finite float (rounded half up), None otherwise."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(math.floor(value + 0.5))
    return None


def _clean_multipliers(table: Mapping[str, Any]) -> Dict[str, float]:
    """Keep only positive numeric entries, keyed by lower-case name."""
    cleaned = {}

    for key, value in table.items():
        if isinstance(value, bool):
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if number > 0:
            cleaned[str(key).lower()] = number
    return cleaned


class ConfigStore:
    """Configuration management for the scoring engine."""

    DEFAULT_CONFIG = {
        "ctf_name": "CTF Scoring",
        "scoring": {
            "dynamic_scoring": True,
            "team_size_penalty": True,
            "speed_bonus": True,
            "first_blood_bonus": DEFAULT_FIRST_BLOOD_BONUS,
            "max_team_size": DEFAULT_MAX_TEAM_SIZE,
            "difficulty_multipliers": dict(DEFAULT_DIFFICULTY_MULTIPLIERS),
            "category_multipliers": dict(DEFAULT_CATEGORY_MULTIPLIERS),
        },
    }

    def __init__(
        self,
        config_path: Optional[str] = "scoring_config.json",
    ) -> None:
        """Initialize configuration from file, environment variables, or defaults."""
        self.config_path = Path(config_path) if config_path else None
        self.config = self._load_config()
        self._apply_env_overrides()
        self._validate_config()
        self._snapshot = ScoringConfig.from_dict(self.config["scoring"])

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration from JSON file or create default.

        @return: Dictionary containing the loaded configuration
        """
        if self.config_path is None:
            return copy.deepcopy(self.DEFAULT_CONFIG)

        if self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    loaded_config = json.load(f)

                # Merge with defaults to ensure all keys exist
                config = copy.deepcopy(self.DEFAULT_CONFIG)
                if isinstance(loaded_config, dict):
                    self._deep_merge(config, loaded_config)
                return config

            except (json.JSONDecodeError, IOError) as e:
                print(f"Error loading config from {self.config_path}: {e}")
                print("Using default configuration")
                return copy.deepcopy(self.DEFAULT_CONFIG)
        else:
            self._create_default_config()
            return copy.deepcopy(self.DEFAULT_CONFIG)

    def _deep_merge(
        self,
        base_dict: Dict[str, Any],
        update_dict: Dict[str, Any],
    ) -> None:
        """
        Recursively merge dictionaries.

        Multiplier tables are replaced wholesale so an administrator can remove
        an entry.

        @param base_dict: Base dictionary to merge into
        @param update_dict: Dictionary with updates to merge
        """
        for key, value in update_dict.items():
            if (
                key in base_dict
                and isinstance(base_dict[key], dict)
                and isinstance(value, dict)
                and not key.endswith("_multipliers")
            ):
                self._deep_merge(base_dict[key], value)
            else:
                base_dict[key] = copy.deepcopy(value)

    def _apply_env_overrides(self) -> None:
        """
        Apply environment variable overrides to configuration.

        Environment variables follow the pattern: KEY (e.g., FIRST_BLOOD_BONUS)
        """
        env_mappings = {
            "CTF_NAME": ("ctf_name",),
            "DYNAMIC_SCORING": ("scoring", "dynamic_scoring"),
            "TEAM_SIZE_PENALTY": ("scoring", "team_size_penalty"),
            "SPEED_BONUS": ("scoring", "speed_bonus"),
            "FIRST_BLOOD_BONUS": ("scoring", "first_blood_bonus"),
            "MAX_TEAM_SIZE": ("scoring", "max_team_size"),
        }

        for env_var, config_path in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                converted_value = self._convert_env_value(env_value)
                self._set_nested_config(config_path, converted_value)

    def _convert_env_value(self, value: str) -> Any:
        """
        Convert environment variable string to appropriate type.

        @param value: String value from environment variable
        @return: Converted value (bool, int, or string)
        """
        if value.lower() in ("true", "yes", "on"):
            return True
        elif value.lower() in ("false", "no", "off"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        return value

    def _set_nested_config(self, path: tuple, value: Any) -> None:
        """
        Set a nested configuration value using a path tuple.

        @param path: Tuple representing the nested path (e.g., ("scoring", "speed_bonus"))
        @param value: Value to set
        """
        current = self.config
        for key in path[:-1]:
            if key not in current or not isinstance(current[key], dict):
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def _create_default_config(self) -> None:
        """
        Create a default configuration file.

        Writes the default configuration to the configured file path.
        """
        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self.DEFAULT_CONFIG, f, indent=2)
            print(f"Created default configuration file: {self.config_path}")
        except IOError as e:
            print(f"Could not create config file {self.config_path}: {e}")

    def _validate_config(self) -> None:
        """
        Validate configuration values.

        Inconsistent values are clamped to the nearest valid value with a warning.
        """
        scoring = self.config.get("scoring")
        if not isinstance(scoring, dict):
            print("Warning: Invalid scoring section, using defaults")
            scoring = copy.deepcopy(self.DEFAULT_CONFIG["scoring"])
            self.config["scoring"] = scoring

        for toggle in ("dynamic_scoring", "team_size_penalty", "speed_bonus"):
            if not isinstance(scoring.get(toggle), bool):
                default = self.DEFAULT_CONFIG["scoring"][toggle]
                print(f"Warning: Invalid {toggle}, using {default}")
                scoring[toggle] = default

        bonus = _whole_number(scoring.get("first_blood_bonus"))
        if bonus is None:
            print(f"Warning: Invalid first_blood_bonus, using {DEFAULT_FIRST_BLOOD_BONUS}")
            scoring["first_blood_bonus"] = DEFAULT_FIRST_BLOOD_BONUS
        elif bonus < 0:
            print("Warning: Negative first_blood_bonus, using 0")
            scoring["first_blood_bonus"] = 0
        else:
            scoring["first_blood_bonus"] = bonus

        max_team_size = _whole_number(scoring.get("max_team_size"))
        if max_team_size is None:
            print(f"Warning: Invalid max_team_size, using {DEFAULT_MAX_TEAM_SIZE}")
            scoring["max_team_size"] = DEFAULT_MAX_TEAM_SIZE
        elif max_team_size < 1:
            print("Warning: max_team_size below 1, using 1")
            scoring["max_team_size"] = 1
        else:
            scoring["max_team_size"] = max_team_size

        for table_name in ("difficulty_multipliers", "category_multipliers"):
            table = scoring.get(table_name)
            if not isinstance(table, dict):
                print(f"Warning: Invalid {table_name}, using defaults")
                scoring[table_name] = dict(self.DEFAULT_CONFIG["scoring"][table_name])
                continue

            cleaned = _clean_multipliers(table)
            if len(cleaned) != len(table):
                print(f"Warning: Dropped invalid entries from {table_name}")
            scoring[table_name] = cleaned

    def get(
        self,
        *keys: str,
    ) -> Any:
        """
        Get nested configuration value.

        @param keys: Variable arguments representing nested keys to traverse
        @return: Configuration value at the specified path, None if not found
        """
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return None
        return value

    def current_config(self) -> ScoringConfig:
        """
        Get the active scoring configuration.

        @return: Immutable snapshot; later updates never mutate it
        """
        return self._snapshot

    def update(
        self,
        changes: Dict[str, Any],
        save: bool = True,
    ) -> ScoringConfig:
        """
        Apply an administrative change to the scoring section.

        @param changes: Partial "scoring" section (e.g. {"first_blood_bonus": 75})
        @param save: Persist the new configuration to the config file
        @return: The newly published snapshot
        """
        self._deep_merge(self.config["scoring"], changes)
        self._validate_config()
        self._snapshot = ScoringConfig.from_dict(self.config["scoring"])

        if save:
            self.save_config()
        return self._snapshot

    def save_config(self) -> bool:
        """
        Save current configuration to file.

        @return: True if saved successfully, False on error
        """
        if self.config_path is None:
            return False
        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self.config, f, indent=2)
            return True
        except IOError as e:
            print(f"Could not save config file {self.config_path}: {e}")
            return False
