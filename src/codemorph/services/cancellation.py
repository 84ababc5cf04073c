"""Cooperative cancellation for long-running updates."""

from codemorph.services.exceptions import OperationCancelledError


class CancellationToken:
    """
    Flag that a user can raise to abandon an update.

    Cancellation is cooperative: the token never interrupts running work.
    Code holding the token checks it at safe points, for instance before
    starting a network request or after one returns.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> token.is_cancellation_requested
        True
    """

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def is_cancellation_requested(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation. Safe to call more than once."""
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        """
        Raise if cancellation was requested.

        Raises:
            OperationCancelledError: If cancel() has been called
        """
        if self._cancelled:
            raise OperationCancelledError()
