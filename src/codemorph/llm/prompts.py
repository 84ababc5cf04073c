"""Prompt templates for file rewrite requests.

All prompt construction should go through these functions so the CLI, the
updater and the tests agree on the exact text sent to the model.
"""

DEFAULT_PROMPT = (
    "Improve and optimize this code while maintaining its functionality. "
    "Add comments where necessary and follow best practices."
)

OUTPUT_DIRECTIVE = (
    "Please provide only the updated file content without any additional "
    "explanation or markdown formatting."
)


def build_update_prompt(instruction: str, file_content: str) -> str:
    """Build the full prompt for a file rewrite.

    The file content is embedded verbatim in a generic fenced block, followed
    by a directive asking for raw output only.

    Args:
        instruction: Configured (or default) instruction text
        file_content: Current content of the target file

    Returns:
        Prompt text for a single-turn generation request
    """
    return (
        f"{instruction}\n\n"
        f"File content:\n"
        f"```\n{file_content}\n```\n\n"
        f"{OUTPUT_DIRECTIVE}"
    )
