"""
Configuration management for the AI DJ engine.

Loads and validates TOML config against strict bounds.
All tunable parameters are bounded and validated at construction.
"""

import os
import re
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import toml

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when config validation fails."""
    pass


# Bounds for numeric settings (inclusive)
SETTINGS_BOUNDS: Dict[str, Tuple[float, float]] = {
    "energy_variation": (0.0, 1.0),
    "tempo_tolerance": (0.0, 0.14),
    "avoid_repeats": (0, 1440),
    "crossfade_duration": (0, 30),
    "mood_preference": (-1.0, 1.0),
    "instrumental_bias": (0.0, 1.0),
    "peak_hour": (0, 23),
    "session_duration": (1, 1440),
}

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake_case(name: str) -> str:
    return _CAMEL_RE.sub("_", name).lower()


@dataclass(frozen=True)
class Settings:
    """
    Tunable knobs for a DJ session.

    Settings are immutable; use ``merge`` to derive an updated copy.
    ``avoid_repeats`` and ``session_duration`` are minutes,
    ``crossfade_duration`` is seconds.
    """

    energy_variation: float = 0.2
    tempo_tolerance: float = 0.05
    avoid_repeats: float = 60
    crossfade_duration: float = 8
    favorite_genres: Tuple[str, ...] = ()
    mood_preference: float = 0.1
    instrumental_bias: float = 0.3
    peak_hour: int = 22
    session_duration: float = 180
    enable_harmonic_mixing: bool = True
    enable_energy_management: bool = True
    enable_crowd_feedback: bool = False

    def __post_init__(self):
        # Accept a single name or a list of names, store as a normalized tuple
        genres = self.favorite_genres
        if isinstance(genres, str):
            genres = (genres,)
        if not isinstance(genres, (list, tuple, set, frozenset)):
            raise ConfigError(f"Setting favorite_genres must be a list of names, got {genres!r}")
        object.__setattr__(
            self, "favorite_genres", tuple(str(g).strip().lower() for g in genres)
        )

        for name, (min_val, max_val) in SETTINGS_BOUNDS.items():
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"Setting {name} must be numeric, got {value!r}")
            if not (min_val <= value <= max_val):
                raise ConfigError(
                    f"Setting {name}={value} out of bounds [{min_val}, {max_val}]"
                )

        if self.peak_hour != int(self.peak_hour):
            raise ConfigError(f"Setting peak_hour must be a whole hour, got {self.peak_hour!r}")
        object.__setattr__(self, "peak_hour", int(self.peak_hour))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        """Build settings from a (possibly camelCase) mapping."""
        return cls().merge(data)

    def merge(self, partial: Dict[str, Any]) -> "Settings":
        """
        Return a copy with ``partial`` merged in.

        Args:
            partial: Mapping of setting names (snake_case or camelCase) to values

        Returns:
            New validated Settings instance

        Raises:
            ConfigError: On unknown keys or out-of-bounds values
        """
        known = {f.name for f in fields(self)}
        updates = {}
        for key, value in partial.items():
            name = _snake_case(key)
            if name not in known:
                raise ConfigError(f"Unknown setting: {key}")
            updates[name] = value
        return replace(self, **updates)

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["favorite_genres"] = list(self.favorite_genres)
        return data


class Config:
    """Configuration loader and validator."""

    DEFAULT_CONFIG = {
        "config_version": "1.0",
        "settings": Settings().to_dict(),
        "weights": {
            "tempo": 0.30,
            "energy": 0.25,
            "harmonic": 0.20,
            "genre": 0.15,
            "mood": 0.10,
        },
    }

    def __init__(self, config_dict: Dict[str, Any]):
        """Initialize config from dictionary."""
        self.data = config_dict
        self._validate()

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """
        Load config from TOML file.

        Args:
            config_path: Path to aidj.toml. If None, uses AIDJ_CONFIG_PATH env var
                        or defaults to configs/aidj.toml.

        Returns:
            Config instance.

        Raises:
            ConfigError: If config is invalid or unreadable.
        """
        if config_path is None:
            config_path = os.getenv("AIDJ_CONFIG_PATH", "configs/aidj.toml")

        config_path = Path(config_path)

        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}. Using defaults.")
            return cls(cls._defaults())

        try:
            config_dict = toml.load(config_path)
        except (toml.TomlDecodeError, OSError) as e:
            raise ConfigError(f"Failed to load config from {config_path}: {e}")

        logger.info(f"Loaded config from {config_path}")
        return cls(config_dict)

    @classmethod
    def _defaults(cls) -> Dict[str, Any]:
        return {
            section: dict(value) if isinstance(value, dict) else value
            for section, value in cls.DEFAULT_CONFIG.items()
        }

    def _validate(self) -> None:
        """
        Validate config sections, filling missing ones with defaults.

        Raises:
            ConfigError: If any parameter is invalid.
        """
        for section in ("settings", "weights"):
            if section not in self.data:
                logger.warning(f"Missing config section: {section}. Using defaults.")
                self.data[section] = dict(self.DEFAULT_CONFIG[section])

        # Both raise ConfigError on bad values
        self.settings = Settings.from_dict(self.data["settings"])

        from .generate.compatibility import CompatibilityModel

        CompatibilityModel(weights=self.weights)

        logger.info("✅ Config validation passed")

    @property
    def weights(self) -> Dict[str, float]:
        return {name: float(value) for name, value in self.data["weights"].items()}

    def __repr__(self) -> str:
        version = self.data.get('config_version', 'unknown')
        return f"Config(version={version})"
