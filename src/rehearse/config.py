# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Configuration management for Rehearse.
Handles loading and saving settings from a YAML config file.
"""

import copy
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any, Literal, TypedDict

import yaml

CONFIG_FILENAME: str = ".rehearse.yaml"

Familiarity = Literal["beginner", "intermediate", "confident"]


class TranscriptionConfig(TypedDict):
    """Type definition for transcription configuration settings."""
    provider: str  # "vosk"
    language: str  # BCP-47 tag, e.g. "en-US"
    model_id: str | None  # Overrides the model chosen for the language
    model_path: str | None  # Optional custom path


class ModeConfig(TypedDict):
    """Type definition for the tunables of one session mode (learn or recall)."""
    required_learning_reps: int | None
    hide_floor: int | None
    hide_cap: int | None
    hide_on_failure: int | None
    restore_policy: str  # "failed" or "most_recent"
    required_clean_turns: int


class HesitationConfig(TypedDict):
    """Type definition for hesitation monitor settings."""
    tick_ms: int
    hesitation_ms: int
    rescue_ms: int
    lenient_rescue_ms: int


class RecallScheduleConfig(TypedDict):
    """Type definition for spaced recall scheduling settings."""
    short_interval_minutes: int
    evening_hour: int
    morning_hour: int
    interval_days: list[int]


class PracticeConfig(TypedDict):
    """Type definition for general practice settings."""
    familiarity: Familiarity
    pre_beat_recall: bool
    pause_window_ms: int
    goal_date: str | None  # ISO date
    beats_per_day: int | None  # None = derive from goal_date
    lenient_words: list[str]


class Config(TypedDict):
    """Type definition for the complete configuration."""
    transcription: TranscriptionConfig
    # Audio settings
    audio_device: int | None
    chunk_ms: int
    # Practice settings
    practice: PracticeConfig
    learn: ModeConfig
    recall: ModeConfig
    hesitation: HesitationConfig
    recall_schedule: RecallScheduleConfig


# Learn-mode values implied by how well the learner already knows the text.
# Explicit values in the "learn" section take precedence.
FAMILIARITY_PRESETS: dict[str, dict[str, int]] = {
    "beginner": {"required_learning_reps": 3, "hide_floor": 1},
    "intermediate": {"required_learning_reps": 3, "hide_floor": 2},
    "confident": {"required_learning_reps": 2, "hide_floor": 3},
}


# Default configuration values
DEFAULT_CONFIG: Config = {
    "transcription": {
        "provider": "vosk",
        "language": "en-US",
        "model_id": None,
        "model_path": None,
    },

    "audio_device": None,
    "chunk_ms": 100,

    "practice": {
        "familiarity": "beginner",
        "pre_beat_recall": False,
        # Ignore transcript events for this long after every turn reset
        "pause_window_ms": 400,
        "goal_date": None,
        "beats_per_day": None,
        "lenient_words": [],
    },

    # Learning a new beat: reps and floor come from the familiarity preset
    "learn": {
        "required_learning_reps": None,
        "hide_floor": None,
        "hide_cap": 3,
        "hide_on_failure": None,  # None = same as hide_floor
        "restore_policy": "failed",
        "required_clean_turns": 2,
    },

    # Reviewing a mastered beat: starts visible, fades in larger chunks
    "recall": {
        "required_learning_reps": 0,
        "hide_floor": 3,
        "hide_cap": 5,
        "hide_on_failure": 3,
        "restore_policy": "failed",
        "required_clean_turns": 2,
    },

    "hesitation": {
        "tick_ms": 500,
        "hesitation_ms": 3000,
        "rescue_ms": 6000,
        "lenient_rescue_ms": 3000,
    },

    "recall_schedule": {
        "short_interval_minutes": 10,
        "evening_hour": 20,
        "morning_hour": 8,
        "interval_days": [0, 0, 2, 3, 5, 7, 7, 7],
    },
}


RESTORE_POLICIES: tuple[str, ...] = ("failed", "most_recent")

# Sections whose keys and values are checked against DEFAULT_CONFIG
CHECKED_SECTIONS: tuple[str, ...] = (
    "practice", "learn", "recall", "hesitation", "recall_schedule",
)


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _is_iso_date(value: Any) -> bool:
    if value is None or isinstance(value, date):
        return True
    if not isinstance(value, str):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


# Checks for settings that are not plain non-negative integers
_VALIDATORS: dict[str, Callable[[Any], bool]] = {
    "familiarity": lambda v: v in FAMILIARITY_PRESETS,
    "pre_beat_recall": lambda v: isinstance(v, bool),
    "goal_date": _is_iso_date,
    "beats_per_day": lambda v: v is None or (_is_count(v) and v > 0),
    "lenient_words": lambda v: isinstance(v, list) and all(isinstance(w, str) for w in v),
    "restore_policy": lambda v: v in RESTORE_POLICIES,
    "evening_hour": lambda v: _is_count(v) and v < 24,
    "morning_hour": lambda v: _is_count(v) and v < 24,
    "interval_days": lambda v: isinstance(v, list) and all(_is_count(d) for d in v),
}


def _valid_setting(key: str, value: Any, default: Any) -> bool:
    validator = _VALIDATORS.get(key)
    if validator is not None:
        return validator(value)
    if value is None:
        return default is None
    return _is_count(value)


def _checked_section(config: Config, section: str) -> dict[str, Any]:
    """
    Merge one config section over its defaults, keeping only usable values.

    Unknown keys and invalid values print a warning and are replaced by the
    default, so a mistake in the config file never stops the app.

    Args:
        config: Configuration dictionary.
        section: Name of a section in DEFAULT_CONFIG.

    Returns:
        New dictionary with every key of the default section.
    """
    defaults: dict[str, Any] = DEFAULT_CONFIG[section]  # type: ignore[literal-required]
    result: dict[str, Any] = copy.deepcopy(dict(defaults))
    values: Any = config.get(section)
    if values is None:
        return result
    if not isinstance(values, dict):
        print(f"Warning: Ignoring config section '{section}': expected a mapping")
        return result

    for key, value in values.items():
        if key not in defaults:
            print(f"Warning: Ignoring unknown setting '{section}.{key}'")
        elif not _valid_setting(key, value, defaults[key]):
            print(f"Warning: Invalid value {value!r} for '{section}.{key}', "
                  f"using default {defaults[key]!r}")
        else:
            result[key] = copy.deepcopy(value)
    return result


def get_config_path() -> Path:
    """Get the path to the config file in the current working directory."""
    return Path.cwd() / CONFIG_FILENAME


def _deep_merge(base, override):
    """
    Deep merge two dictionaries, with override taking precedence.
    Returns a new dictionary without modifying the originals.

    Args:
        base: Base dictionary to merge from.
        override: Dictionary with values that take precedence over base.

    Returns:
        New dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file, merged with defaults.

    Args:
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        Configuration dictionary with all values (defaults + overrides from file).
    """
    if config_path is None:
        config_path = get_config_path()

    # Start with defaults
    config: dict[str, Any] = copy.deepcopy(dict(DEFAULT_CONFIG))

    # Load from file if it exists
    if config_path.exists():
        try:
            with open(config_path, encoding='utf-8') as f:
                file_config: dict[str, Any] | None = yaml.safe_load(f)
                if isinstance(file_config, dict):
                    config = _deep_merge(config, file_config)
        except (OSError, yaml.YAMLError) as e:
            print(f"Warning: Could not load config from {config_path}: {e}")

    for section in CHECKED_SECTIONS:
        config[section] = _checked_section(config, section)  # type: ignore[arg-type]

    return config  # type: ignore[return-value]


def save_config(config: Config, config_path: Path | None = None) -> bool:
    """
    Save configuration to file.

    Args:
        config: Configuration dictionary to save.
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        True if save was successful, False otherwise.
    """
    if config_path is None:
        config_path = get_config_path()

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(dict(config), f, default_flow_style=False, sort_keys=False)
        return True
    except (OSError, yaml.YAMLError) as e:
        print(f"Error saving config to {config_path}: {e}")
        return False


def get_mode_settings(config: Config, mode: str) -> ModeConfig:
    """
    Extract the tunables for a session mode, with presets applied.

    For learn mode, unset values are filled from the familiarity preset.

    Args:
        config: Configuration dictionary.
        mode: "learn" or "recall".

    Returns:
        Mode settings dictionary with every value set.
    """
    if mode not in ("learn", "recall"):
        raise ValueError(f"Unknown mode: {mode}")

    settings: dict[str, Any] = _checked_section(config, mode)

    if mode == "learn":
        familiarity: str = get_practice_settings(config)["familiarity"]
        preset: dict[str, int] = FAMILIARITY_PRESETS.get(
            familiarity, FAMILIARITY_PRESETS["beginner"])
        for key, value in preset.items():
            if settings.get(key) is None:
                settings[key] = value

    if settings.get("hide_on_failure") is None:
        settings["hide_on_failure"] = settings["hide_floor"]

    return settings  # type: ignore[return-value]


def get_hesitation_settings(config: Config) -> HesitationConfig:
    """
    Extract hesitation monitor settings from config.

    Args:
        config: Configuration dictionary.

    Returns:
        Hesitation settings dictionary.
    """
    return _checked_section(config, "hesitation")  # type: ignore[return-value]


def get_recall_schedule_settings(config: Config) -> RecallScheduleConfig:
    """
    Extract recall scheduling settings from config.

    Args:
        config: Configuration dictionary.

    Returns:
        Recall schedule settings dictionary.
    """
    return _checked_section(config, "recall_schedule")  # type: ignore[return-value]


def get_transcription_settings(config: Config) -> TranscriptionConfig:
    """
    Extract transcription settings from config.

    Args:
        config: Configuration dictionary.

    Returns:
        Transcription settings dictionary.
    """
    return config.get("transcription",
                      DEFAULT_CONFIG["transcription"]
                      ).copy()  # type: ignore[return-value]


def get_practice_settings(config: Config) -> PracticeConfig:
    """
    Extract general practice settings from config.

    Args:
        config: Configuration dictionary.

    Returns:
        Practice settings dictionary.
    """
    return _checked_section(config, "practice")  # type: ignore[return-value]
