import asyncio
import logging
import multiprocessing
from typing import Any, Callable

from livecode.config import Settings
from livecode.errors import ContextUnavailable, ReadError, ReloadFailed
from livecode.host.envelope import unwrap, wrap
from livecode.host.runtime import ENTRY_POINT, ContextOptions, run_context
from livecode.ui import HostUI


logger = logging.getLogger("livecode.host.bridge")

MIN_FALLBACK_LENGTH = 10
CLOSE_TIMEOUT_SECONDS = 2.0


class ContextProcess:
    """One live execution context: a spawned child process and its command pipe."""

    def __init__(self, options: ContextOptions) -> None:
        mp = multiprocessing.get_context("spawn")
        self._conn, child_conn = mp.Pipe()
        self._process = mp.Process(
            target=run_context,
            args=(child_conn, options.model_dump()),
            name="livecode-context",
            daemon=True,
        )
        self._process.start()
        child_conn.close()

    @property
    def alive(self) -> bool:
        return self._process.is_alive()

    def wait_loaded(self, timeout: float) -> None:
        if not self._conn.poll(timeout):
            raise ReloadFailed(f"Execution context did not finish loading within {timeout:g}s")
        message = self._conn.recv()
        if not isinstance(message, dict) or message.get("event") != "load":
            raise ReloadFailed(f"Unexpected message while loading: {message!r}")

    def request(self, message: dict[str, Any]) -> dict[str, Any]:
        self._conn.send(message)
        reply = self._conn.recv()
        if not isinstance(reply, dict):
            raise ContextUnavailable(f"Malformed reply from execution context: {reply!r}")
        return reply

    def close(self) -> None:
        if self._process.is_alive():
            try:
                self._conn.send({"op": "close"})
            except (EOFError, OSError):
                pass
            self._process.join(CLOSE_TIMEOUT_SECONDS)
        if self._process.is_alive():
            self._process.terminate()
            self._process.join(CLOSE_TIMEOUT_SECONDS)
        self._conn.close()


class ExecutionHostBridge:
    """Reads the running payload back out and swaps new code in by full reset.

    Applying never patches the live payload. The context is destroyed and recreated
    and the new code is injected into the fresh one, because the payload is
    free-running global code with no unload hook.
    """

    def __init__(
        self,
        settings: Settings,
        ui: HostUI | None = None,
        spawn: Callable[[ContextOptions], Any] = ContextProcess,
    ) -> None:
        self.settings = settings
        self.ui = ui or HostUI()
        self._spawn = spawn
        self._context: Any = None

    @property
    def fallback_path(self) -> str:
        return self.settings.payload_path

    def _options(self, boot: bool) -> ContextOptions:
        return ContextOptions(
            boot_path=self.fallback_path if boot else None,
            window=self.settings.window_enabled,
            headless=self.settings.headless,
            width=self.settings.window_width,
            height=self.settings.window_height,
            fps=self.settings.fps,
            log_level=self.settings.log_level,
        )

    async def start(self) -> None:
        """Bring up the first context running the pristine game."""
        await self._reload(boot=True)

    async def restart(self) -> None:
        self.ui.show_overlay()
        try:
            await self._reload(boot=True)
        finally:
            self.ui.hide_overlay()

    async def close(self) -> None:
        context, self._context = self._context, None
        if context is not None:
            await asyncio.to_thread(context.close)

    # -------------------------
    # Reading
    # -------------------------

    async def read_current_code(self) -> str:
        injected = await self._read_injected()
        if injected:
            body = unwrap(injected)
            if body is not None:
                logger.info("Retrieved code from the injected module")
                return body
            logger.warning(
                "Injected module found, but the envelope did not match: %r", injected[:200]
            )
        logger.info("Reading pristine payload from %s (fallback)", self.fallback_path)
        return await asyncio.to_thread(self._read_fallback)

    async def _read_injected(self) -> str | None:
        context = self._context
        if context is None:
            return None
        try:
            reply = await asyncio.to_thread(context.request, {"op": "read"})
        except (EOFError, OSError, ContextUnavailable) as e:
            logger.warning("Could not read injected module from context: %s", str(e))
            return None
        injected = reply.get("injected")
        return injected if isinstance(injected, str) else None

    def _read_fallback(self) -> str:
        try:
            with open(self.fallback_path, "r", encoding="utf-8") as f:
                original = f.read()
        except OSError as e:
            raise ReadError(f"Failed to get current game code: {e}") from e
        original = original.strip()
        if len(original) < MIN_FALLBACK_LENGTH:
            raise ReadError(
                f"Failed to get current game code: {self.fallback_path} is empty or too short"
            )
        return original

    # -------------------------
    # Applying
    # -------------------------

    async def apply_code(self, new_code: str) -> None:
        self.ui.show_overlay()
        try:
            await self._reload(boot=False)
            await self._inject(new_code)
        finally:
            self.ui.hide_overlay()
        self.ui.flash_success()

    async def _reload(self, boot: bool) -> None:
        await self.close()
        options = self._options(boot)
        try:
            context = await asyncio.to_thread(self._spawn, options)
        except (OSError, RuntimeError) as e:
            raise ReloadFailed(f"Could not start execution context: {e}") from e
        self._context = context
        try:
            await asyncio.to_thread(context.wait_loaded, self.settings.reload_timeout_seconds)
        except (EOFError, OSError) as e:
            raise ReloadFailed(f"Execution context exited while loading: {e}") from e
        logger.info("Execution context loaded (boot=%s)", boot)

    async def _inject(self, new_code: str) -> None:
        context = self._context
        if context is None or not context.alive:
            raise ContextUnavailable("Cannot reach the execution context after reload")
        try:
            reset = await asyncio.to_thread(context.request, {"op": "reset"})
            if reset.get("removed") or reset.get("cancelled"):
                logger.info(
                    "Cleared residual state in fresh context removed=%s cancelled=%s",
                    reset.get("removed"),
                    reset.get("cancelled"),
                )
            reply = await asyncio.to_thread(
                context.request, {"op": "inject", "source": wrap(new_code)}
            )
        except (EOFError, OSError) as e:
            raise ContextUnavailable(f"Execution context stopped answering: {e}") from e

        if not reply.get("ok"):
            raise ContextUnavailable(reply.get("error") or "Execution context rejected the code")
        if reply.get("warning"):
            logger.warning("New game code raised while starting: %s", reply["warning"])
        if not reply.get("entry_point"):
            logger.warning(
                "New game code injected, but %s() was not found or called automatically",
                ENTRY_POINT,
            )
