"""Cooperative cancellation primitives shared by resolution and download tasks.

Artifact acquisition performs several blocking steps: discovery requests,
streamed transfers, and archive extraction.  Callers hand a
:class:`CancellationToken` to those routines, which check it between network
requests and between streamed chunks.  A token may carry a deadline so that
one object expresses both explicit cancellation and a time budget.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from .errors import Cancelled


class CancellationToken:
    """Thread-safe cancellation token for cooperative task cancellation.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self, *, deadline: Optional[float] = None) -> None:
        """Initialize a new token, optionally bounded by a monotonic ``deadline``."""
        self._is_cancelled = threading.Event()
        self._lock = threading.Lock()
        self._deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancellationToken":
        """Return a token that reports cancellation once ``seconds`` have elapsed."""
        return cls(deadline=time.monotonic() + max(0.0, seconds))

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        with self._lock:
            self._is_cancelled.set()

    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def is_cancelled(self) -> bool:
        """Return True once :meth:`cancel` was called or the deadline passed."""
        return self._is_cancelled.is_set() or self.expired()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or ``None`` when unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self, context: str = "operation") -> None:
        """Raise :class:`Cancelled` when the token has fired."""
        if self._is_cancelled.is_set():
            raise Cancelled(f"{context} cancelled")
        if self.expired():
            raise Cancelled(f"{context} exceeded its deadline")

    def reset(self) -> None:
        """Reset the explicit cancellation flag; the deadline is unchanged.

        This should only be used for testing or when reusing tokens
        in controlled scenarios.
        """
        with self._lock:
            self._is_cancelled.clear()


def check_cancelled(token: Optional[CancellationToken], context: str) -> None:
    """Raise :class:`Cancelled` when ``token`` is present and has fired."""

    if token is not None:
        token.raise_if_cancelled(context)


__all__ = ["CancellationToken", "check_cancelled"]
