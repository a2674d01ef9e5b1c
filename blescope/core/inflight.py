"""Per-identity mutual exclusion for connect/disconnect commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager


class InFlightGuard:
    """Tracks identities with a command in flight.

    A second command for a busy identity is rejected, not queued.
    """

    def __init__(self) -> None:
        self._active: set[str] = set()

    @contextmanager
    def hold(self, identity: str) -> Iterator[bool]:
        """Yield ``True`` and mark ``identity`` busy, or ``False`` if it already is."""
        if identity in self._active:
            yield False
            return
        self._active.add(identity)
        try:
            yield True
        finally:
            self._active.discard(identity)

    def is_active(self, identity: str) -> bool:
        return identity in self._active

    @property
    def active(self) -> frozenset[str]:
        return frozenset(self._active)
