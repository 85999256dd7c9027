from typing import Callable


class HistoryStack:
    """LIFO of code snapshots taken before each change.

    The top of the stack, when present, is the snapshot that immediately preceded
    the code currently running. Lives in memory only.
    """

    def __init__(self) -> None:
        self._snapshots: list[str] = []
        self._listeners: list[Callable[[int], None]] = []

    def __len__(self) -> int:
        return len(self._snapshots)

    def is_empty(self) -> bool:
        return not self._snapshots

    def subscribe(self, listener: Callable[[int], None]) -> None:
        """Call listener with the new length after every mutation."""
        self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener(len(self._snapshots))

    def push(self, snapshot: str) -> None:
        self._snapshots.append(snapshot)
        self._changed()

    def pop(self) -> str | None:
        if not self._snapshots:
            return None
        snapshot = self._snapshots.pop()
        self._changed()
        return snapshot

    def peek(self) -> str | None:
        return self._snapshots[-1] if self._snapshots else None

    def clear(self) -> None:
        self._snapshots.clear()
        self._changed()
