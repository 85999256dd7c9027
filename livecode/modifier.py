import logging
from typing import Any

from livecode.errors import ApplyError
from livecode.history import HistoryStack
from livecode.ui import HostUI


logger = logging.getLogger("livecode.modifier")


PRESETS: list[str] = [
    "make the player blue",
    "make the obstacles move twice as fast",
    "add a double jump",
    "make gravity weaker so the player floats",
    "add a high score that survives game over",
    "turn the player into a circle",
]


class GameModifier:
    """Drives apply / undo / restart against the live game.

    Only one operation runs at a time. Exclusivity comes from the UI busy flag alone:
    the triggers are disabled while an operation is in flight and requests arriving
    anyway are refused.
    """

    def __init__(
        self,
        bridge: Any,
        client: Any,
        history: HistoryStack | None = None,
        ui: HostUI | None = None,
    ) -> None:
        self.bridge = bridge
        self.client = client
        self.history = history if history is not None else HistoryStack()
        self.ui = ui or getattr(bridge, "ui", None) or HostUI()
        # Undo enablement is a pure function of stack emptiness
        self.history.subscribe(lambda size: self.ui.set_undo_enabled(size > 0))
        self.ui.set_undo_enabled(not self.history.is_empty())

    async def record_and_apply(self, user_request: str) -> bool:
        """Snapshot the running code, generate a rewrite and swap it in.

        The snapshot is pushed before generation starts and popped again if anything
        in the chain fails, so history never keeps the precursor of a failed attempt.
        """
        user_request = (user_request or "").strip()
        if not user_request:
            return False
        if self.ui.state.busy:
            logger.warning("Apply requested while another operation is in flight")
            return False

        self.ui.begin_apply()
        pushed = False
        try:
            current_code = await self.bridge.read_current_code()
            self.history.push(current_code)
            pushed = True

            new_code = await self.client.modify_code(
                current_code, user_request, on_progress=self.ui.update_progress
            )
            await self.bridge.apply_code(new_code)
        except Exception as e:
            logger.error("Failed to modify game: %s", str(e))
            if pushed:
                self.history.pop()
            self.ui.show_error(f"Failed to modify game: {e}")
            return False
        finally:
            self.ui.end_apply()
            self.ui.reset_progress()

        logger.info("Applied request %r (history=%d)", user_request, len(self.history))
        return True

    async def undo(self) -> bool:
        """Restore the previous snapshot. Silently does nothing when history is empty.

        If applying the snapshot fails it goes back on the stack, so the undo can be
        retried.
        """
        if self.history.is_empty():
            return False
        if self.ui.state.busy:
            logger.warning("Undo requested while another operation is in flight")
            return False

        self.ui.begin_undo()
        snapshot = self.history.pop()
        try:
            await self.bridge.apply_code(snapshot)
        except Exception as e:
            logger.error("Failed to undo changes: %s", str(e))
            self.history.push(snapshot)
            self.ui.show_error(f"Failed to undo changes: {e}")
            return False
        finally:
            self.ui.end_undo()

        logger.info("Undo applied (history=%d)", len(self.history))
        return True

    async def restart(self) -> bool:
        """Reset the game to its pristine code and forget all history."""
        if self.ui.state.busy:
            logger.warning("Restart requested while another operation is in flight")
            return False

        self.ui.begin_restart()
        self.history.clear()
        try:
            await self.bridge.restart()
        except ApplyError as e:
            self.ui.show_error(f"Failed to restart game: {e}")
            return False
        finally:
            self.ui.end_restart()
        return True
