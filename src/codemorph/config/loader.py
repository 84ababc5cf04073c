"""Configuration loader with YAML and environment variable support.

This module reads ~/.config/codemorph/config.yaml and allows environment
variable overrides using the CODEMORPH_* prefix.

Environment variables:
- CODEMORPH_API_KEY: Override api_key
- CODEMORPH_AI_MODEL: Override ai.model
- CODEMORPH_DEFAULT_PROMPT: Override default_prompt
- CODEMORPH_AUTO_SAVE: Override auto_save (1/true/yes/on enable it)
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

from codemorph.models.config import Config


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def default_config_path() -> Path:
    """Return the default configuration file location."""
    return Path.home() / ".config" / "codemorph" / "config.yaml"


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Unlike most settings stores this never fails because a key is absent:
    every key has a default, and a missing API key is left for the caller
    to report.

    Args:
        config_path: Path to config file. If None, uses ~/.config/codemorph/config.yaml

    Returns:
        Validated Config object

    Raises:
        PermissionError: If config file is readable by group/others
        ValueError: If config file is invalid
    """
    if config_path is None:
        config_path = default_config_path()

    data = Config.read_data(config_path)
    data = _apply_env_overrides(data)

    return Config(**data)


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to configuration data.

    Args:
        data: Base configuration dictionary from YAML

    Returns:
        Configuration dictionary with environment overrides applied
    """
    data = dict(data)

    # Environment values win over either spelling found in the file
    if env_api_key := os.getenv("CODEMORPH_API_KEY"):
        data.pop("apiKey", None)
        data["api_key"] = env_api_key

    if env_model := os.getenv("CODEMORPH_AI_MODEL"):
        ai = data.get("ai") or {}
        data["ai"] = {**ai, "model": env_model}

    if env_prompt := os.getenv("CODEMORPH_DEFAULT_PROMPT"):
        data.pop("defaultPrompt", None)
        data["default_prompt"] = env_prompt

    if env_auto_save := os.getenv("CODEMORPH_AUTO_SAVE"):
        value = env_auto_save.strip().lower()
        if value in _TRUE_VALUES or value in _FALSE_VALUES:
            data.pop("autoSave", None)
            data["auto_save"] = value in _TRUE_VALUES
        # Anything else is ignored, the file value stays

    return data
