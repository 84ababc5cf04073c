"""Configuration models for CodeMorph."""

from pydantic import AliasChoices, BaseModel, Field, HttpUrl, field_validator
from pathlib import Path
from typing import Any, Optional
import yaml
import os
import stat

from codemorph.llm.prompts import DEFAULT_PROMPT


DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta"


class AIConfig(BaseModel):
    """Configuration for the Gemini generation API."""

    model: str = Field(
        default=DEFAULT_MODEL,
        description="Gemini model name (e.g., 'gemini-2.0-flash', 'gemini-1.5-pro')"
    )

    endpoint: HttpUrl = Field(
        default=HttpUrl(DEFAULT_ENDPOINT),
        description="Base URL of the Generative Language API"
    )

    request_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds to wait for a generation response (None waits indefinitely)"
    )

    @field_validator("model", mode="before")
    @classmethod
    def default_when_blank(cls, v: Any) -> Any:
        """Fall back to the default model when the setting is empty."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_MODEL
        return v

    model_config = {"frozen": True}


class Config(BaseModel):
    """Root configuration for CodeMorph.

    Every key is optional at read time. A missing API key is reported by the
    update command when it is about to be used, not here.
    """

    api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("api_key", "apiKey"),
        description="Gemini API key"
    )

    ai: AIConfig = Field(default_factory=AIConfig, description="Generation API settings")

    default_prompt: str = Field(
        default=DEFAULT_PROMPT,
        validation_alias=AliasChoices("default_prompt", "defaultPrompt"),
        description="Instruction sent ahead of the file content"
    )

    auto_save: bool = Field(
        default=False,
        validation_alias=AliasChoices("auto_save", "autoSave"),
        description="Write the updated buffer to disk after applying it"
    )

    @field_validator("ai", mode="before")
    @classmethod
    def empty_section(cls, v: Any) -> Any:
        """Treat an empty `ai:` section as all defaults."""
        return {} if v is None else v

    @field_validator("default_prompt", mode="before")
    @classmethod
    def prompt_default_when_blank(cls, v: Any) -> Any:
        """Fall back to the built-in instruction when the setting is empty."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_PROMPT
        return v

    @property
    def has_api_key(self) -> bool:
        """True when a non-blank API key is configured."""
        return bool(self.api_key and self.api_key.strip())

    @staticmethod
    def read_data(path: Path) -> dict:
        """
        Read raw configuration data from a YAML file.

        A missing or empty file yields an empty dict. Because the file holds
        an API key, it must not be readable by group or others.

        Args:
            path: Path to config.yaml file

        Returns:
            Parsed YAML mapping

        Raises:
            PermissionError: If file is group/world accessible
            ValueError: If YAML is invalid or not a mapping
        """
        if not path.exists():
            return {}

        mode = os.stat(path).st_mode
        if mode & (stat.S_IRWXG | stat.S_IRWXO):
            raise PermissionError(
                f"Config file has overly permissive permissions: {oct(mode)}\n"
                f"Run: chmod 600 {path}"
            )

        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping at the top level")

        return data

    @classmethod
    def load(cls, path: Path) -> "Config":
        """
        Load configuration from YAML file, without environment overrides.

        Args:
            path: Path to config.yaml file

        Returns:
            Validated Config instance (defaults when the file is missing)

        Raises:
            PermissionError: If file permissions are too open
            ValueError: If YAML is invalid or validation fails
        """
        return cls(**cls.read_data(path))

    model_config = {"frozen": True}
