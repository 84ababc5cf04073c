"""CodeMorph: rewrite source files with Google Gemini."""

__version__ = "0.1.0"
