"""Custom exceptions for CodeMorph services."""

from typing import Optional


class GenerationError(Exception):
    """Raised when the generation API rejects a request or returns unusable data.

    Covers HTTP error statuses (authentication, quota, unknown model) and
    responses that carry no text, such as blocked prompts.

    Attributes:
        status_code: HTTP status of the failed response, None for malformed bodies
        message: Human-readable error message (the API's own wording when present)
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


class EmptyResponseError(Exception):
    """Raised when the model's answer is empty once code fences are stripped."""

    def __init__(self, message: str = "AI returned empty content"):
        self.message = message
        super().__init__(message)


class OperationCancelledError(Exception):
    """Raised when work is refused because cancellation was already requested."""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)


class FileModifiedError(Exception):
    """Raised when a file is modified on disk while an update holds its buffer.

    Writing in that situation would silently discard the external change.

    Attributes:
        path: The file that changed
        message: Which check noticed the change
    """

    def __init__(self, path: str, message: str = "File was modified on disk since it was opened"):
        self.path = path
        self.message = message
        super().__init__(f"{message}: {path}")
