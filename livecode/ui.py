import logging
from typing import Callable

from pydantic import BaseModel


logger = logging.getLogger("livecode.ui")

APPLY_LABEL = "Apply Changes"
APPLYING_LABEL = "Modifying..."
UNDO_LABEL = "Undo Changes"
UNDOING_LABEL = "Undoing..."
SUCCESS_NOTICE = "Changes applied"


class UIState(BaseModel):
    """Snapshot of the host UI affordances.

    Attributes:
        busy: An apply, undo or restart is in flight; both triggers are disabled.
        overlay: The game area is covered while the execution context resets.
        apply_label: Text of the apply trigger.
        undo_label: Text of the undo trigger.
        undo_enabled: History is non-empty.
        progress: Stream progress in percent. May pass 100 (approximate denominator).
        notice: Last success notice, if any.
        error: Last error notification, if any.
    """

    busy: bool = False
    overlay: bool = False
    apply_label: str = APPLY_LABEL
    undo_label: str = UNDO_LABEL
    undo_enabled: bool = False
    progress: float = 0.0
    notice: str | None = None
    error: str | None = None

    @property
    def apply_enabled(self) -> bool:
        return not self.busy

    @property
    def can_undo(self) -> bool:
        return self.undo_enabled and not self.busy


class HostUI:
    """Holds the UI state and tells subscribers about every change."""

    def __init__(self) -> None:
        self.state = UIState()
        self._listeners: list[Callable[[UIState], None]] = []

    def subscribe(self, listener: Callable[[UIState], None]) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[UIState], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _update(self, **changes) -> None:
        self.state = self.state.model_copy(update=changes)
        for listener in list(self._listeners):
            listener(self.state)

    def show_overlay(self) -> None:
        self._update(overlay=True)

    def hide_overlay(self) -> None:
        self._update(overlay=False)

    def flash_success(self) -> None:
        self._update(notice=SUCCESS_NOTICE)

    def begin_apply(self) -> None:
        self._update(busy=True, apply_label=APPLYING_LABEL, overlay=True, error=None, notice=None)

    def end_apply(self) -> None:
        self._update(busy=False, apply_label=APPLY_LABEL, overlay=False)

    def begin_undo(self) -> None:
        self._update(busy=True, undo_label=UNDOING_LABEL, overlay=True, error=None, notice=None)

    def end_undo(self) -> None:
        self._update(busy=False, undo_label=UNDO_LABEL, overlay=False)

    def begin_restart(self) -> None:
        self._update(busy=True, error=None, notice=None)

    def end_restart(self) -> None:
        self._update(busy=False)

    def set_undo_enabled(self, enabled: bool) -> None:
        if enabled != self.state.undo_enabled:
            self._update(undo_enabled=enabled)

    def update_progress(self, received: int, total: int) -> None:
        percent = (received / total) * 100 if total > 0 else 0.0
        self._update(progress=percent)

    def reset_progress(self) -> None:
        self._update(progress=0.0)

    def show_error(self, message: str) -> None:
        logger.error("%s", message)
        self._update(error=message)
