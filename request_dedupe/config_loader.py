"""
Configuration loader for request deduplication defaults.

Looks for a YAML config in this order:
1. Explicit config_path argument
2. Environment variable DEDUPE_CONFIG_PATH
3. ./dedupe.yaml (local development)
4. Falls back to default config

DEDUPE_DURATION_MS and DEDUPE_CLEAR_ON_ERROR override whatever the file says.
Invalid values are logged and replaced with the built-in defaults.
"""

import logging
import math
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import DEFAULT_CLEAR_ON_ERROR, DEFAULT_DURATION_MS, DedupeOptions

logger = logging.getLogger(__name__)

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"0", "false", "no", "off"}


class Config:
    def __init__(self, config_path: str | None = None):
        # Determine config path in order of priority
        if config_path:
            self.config_path = Path(config_path)
        elif os.getenv("DEDUPE_CONFIG_PATH"):
            self.config_path = Path(os.getenv("DEDUPE_CONFIG_PATH"))
        elif Path("./dedupe.yaml").exists():
            self.config_path = Path("./dedupe.yaml")
        else:
            self.config_path = None

        self._config = self._load_config()

    def _load_config(self) -> dict[str, Any]:
        """
        Load configuration from the YAML file.

        Returns default config if the file is missing, unreadable or not a mapping.
        """
        if self.config_path and self.config_path.exists():
            try:
                with open(self.config_path, encoding="utf-8") as f:
                    config_data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Error loading config from %s: %s", self.config_path, e)
            else:
                if isinstance(config_data, dict):
                    logger.info("Loaded dedupe config from: %s", self.config_path)
                    return config_data
                logger.warning("Ignoring config %s: top level is not a mapping", self.config_path)
        elif self.config_path:
            logger.warning("Config file not found: %s, using defaults", self.config_path)

        return {
            "dedupe": {
                "duration_ms": DEFAULT_DURATION_MS,
                "clear_on_error": DEFAULT_CLEAR_ON_ERROR,
            }
        }

    def _section(self) -> dict[str, Any]:
        section = self._config.get("dedupe", {})
        return section if isinstance(section, dict) else {}

    @property
    def duration_ms(self) -> float:
        env_value = os.getenv("DEDUPE_DURATION_MS")
        if env_value:
            return _parse_duration(env_value, "DEDUPE_DURATION_MS")
        return _parse_duration(
            self._section().get("duration_ms", DEFAULT_DURATION_MS), "dedupe.duration_ms"
        )

    @property
    def clear_on_error(self) -> bool:
        env_value = os.getenv("DEDUPE_CLEAR_ON_ERROR")
        if env_value:
            return _parse_flag(env_value, "DEDUPE_CLEAR_ON_ERROR")
        return _parse_flag(
            self._section().get("clear_on_error", DEFAULT_CLEAR_ON_ERROR), "dedupe.clear_on_error"
        )

    def dedupe_options(self) -> DedupeOptions:
        """Build DedupeOptions from the configured defaults, falling back to built-ins."""
        try:
            return DedupeOptions(duration=self.duration_ms, clear_on_error=self.clear_on_error)
        except ValidationError as e:
            logger.warning("Invalid dedupe config, using defaults: %s", e)
            return DedupeOptions()


def _parse_duration(value: Any, source: str) -> float:
    """Parse a non-negative, finite millisecond value or return the default."""
    try:
        duration = float(value)
    except (TypeError, ValueError):
        duration = -1.0
    if isinstance(value, bool) or not math.isfinite(duration) or duration < 0:
        logger.warning(
            "Invalid %s %r, using default %s ms", source, value, DEFAULT_DURATION_MS
        )
        return DEFAULT_DURATION_MS
    return duration


def _parse_flag(value: Any, source: str) -> bool:
    """Accept real booleans and the usual on/off strings from YAML or env."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in TRUTHY:
            return True
        if normalized in FALSY:
            return False
    logger.warning("Invalid %s %r, using default %s", source, value, DEFAULT_CLEAR_ON_ERROR)
    return DEFAULT_CLEAR_ON_ERROR


# Global config singleton; pass config.dedupe_options() to opt into configured defaults
config = Config()
