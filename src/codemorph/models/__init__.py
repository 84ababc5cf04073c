"""Pydantic data models for CodeMorph."""

from codemorph.models.config import AIConfig, Config

__all__ = ["AIConfig", "Config"]
