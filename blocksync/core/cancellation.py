"""Cooperative cancellation for synchronization passes.

A pass checks its token before every embedding call and once more before
the commit. Cancellation never interrupts a provider call in flight; it
only guarantees that nothing is written afterwards.
"""

from __future__ import annotations

import threading

from blocksync.core.errors import SyncCancelledError


class CancellationToken:
    """Thread-safe cancellation flag shared between a caller and a pass.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        return self._is_cancelled.is_set()

    def raise_if_cancelled(self, context: str = "") -> None:
        """Raise :class:`SyncCancelledError` if cancellation was requested."""
        if self._is_cancelled.is_set():
            suffix = f" ({context})" if context else ""
            raise SyncCancelledError(f"Synchronization cancelled{suffix}")
