"""Shared test fixtures for all test modules."""

import pytest


@pytest.fixture(autouse=True)
def clean_codemorph_env(monkeypatch):
    """
    Remove CODEMORPH_* variables from the environment for every test.

    A developer shell with CODEMORPH_API_KEY or CODEMORPH_ACTIVE_FILE set
    would otherwise leak into config loading and target resolution.
    """
    for name in (
        "CODEMORPH_API_KEY",
        "CODEMORPH_AI_MODEL",
        "CODEMORPH_DEFAULT_PROMPT",
        "CODEMORPH_AUTO_SAVE",
        "CODEMORPH_ACTIVE_FILE",
        "CODEMORPH_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
