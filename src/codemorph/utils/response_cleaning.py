"""Utilities for cleaning model responses before they replace file content."""

import re

# Fence with an optional info string, closed by a fence on its own line
_FENCED_BLOCK = re.compile(r"```[\s\S]*?\n([\s\S]*?)\n```")

# Any remaining fence pair, no newline required after the opener
_BARE_FENCE = re.compile(r"```([\s\S]*?)```")


def clean_ai_response(response: str) -> str:
    """
    Strip markdown code fences from a model response.

    Models often wrap the rewritten file in a fenced block even when asked
    not to. Two passes are applied unconditionally: first fenced blocks with
    an optional language tag are replaced by their body, then any leftover
    triple-backtick pair is replaced by its inner text. The result is trimmed
    of leading/trailing whitespace, internal formatting is preserved.

    This is a heuristic, not a markdown parser. Responses containing several
    blocks or nested fences are cleaned block by block with no attempt to
    pick "the" answer.

    Args:
        response: Raw text returned by the model

    Returns:
        Response with fence delimiters removed and outer whitespace trimmed

    Example:
        >>> clean_ai_response("```python\\nx = 1\\n```")
        'x = 1'
    """
    cleaned = _FENCED_BLOCK.sub(r"\1", response)
    cleaned = _BARE_FENCE.sub(r"\1", cleaned)

    return cleaned.strip()
