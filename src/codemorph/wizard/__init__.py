"""Interactive configuration wizard for CodeMorph.

This package provides the `codemorph configure` command functionality,
guiding users through configuration setup with validation.
"""

from codemorph.wizard.wizard import run_setup_wizard

__all__ = ["run_setup_wizard"]
