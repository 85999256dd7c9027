"""Child-process side of the execution context.

One process hosts one payload. The host never patches a running payload; it
kills the process and starts a fresh one, so timers, listeners and globals
cannot leak between versions. Commands arrive over a multiprocessing pipe and
are serviced between frames, which keeps the context single-threaded.
"""
import builtins
import logging
import os
import time
from multiprocessing.connection import Connection
from typing import Any, Callable

from pydantic import BaseModel

from livecode.config import configure_logging


logger = logging.getLogger("livecode.host.runtime")
payload_logger = logging.getLogger("livecode.payload")

ENTRY_POINT = "init_game"
LOOP_HANDLE = "game_loop_id"

FrameCallback = Callable[[float], Any]
KeyListener = Callable[[str], Any]


class ContextOptions(BaseModel):
    """How a fresh execution context should come up."""

    boot_path: str | None = None
    window: bool = True
    headless: bool = False
    width: int = 800
    height: int = 400
    fps: int = 60
    title: str = "livecode"
    log_level: str = "INFO"


class HostAPI:
    """The ``host`` object visible to payload code."""

    def __init__(self, runtime: "HostRuntime") -> None:
        self._runtime = runtime
        self.log = payload_logger

    @property
    def width(self) -> int:
        return self._runtime.options.width

    @property
    def height(self) -> int:
        return self._runtime.options.height

    @property
    def surface(self) -> Any:
        return self._runtime.surface

    def request_frame(self, callback: FrameCallback) -> int:
        return self._runtime.request_frame(callback)

    def cancel_frame(self, handle: int | None) -> None:
        self._runtime.cancel_frame(handle)

    def add_key_listener(self, listener: KeyListener) -> None:
        self._runtime.key_listeners.append(listener)

    def remove_key_listener(self, listener: KeyListener) -> None:
        try:
            self._runtime.key_listeners.remove(listener)
        except ValueError:
            pass

    def expose(self, name: str, value: Any) -> None:
        """Publish a name in the context's global namespace."""
        self._runtime.globals[name] = value


class HostRuntime:
    """State of one execution context.

    Attributes:
        options: Startup options for this context.
        surface: pygame display surface, or None when running without a window.
        injected: Source of the injected module, if any. Acts as the marker the
            bridge reads back.
        globals: The context's global namespace. The envelope executes here;
            payloads publish host-global names into it via ``host.expose``.
        frames: Pending frame callbacks keyed by handle.
        key_listeners: Callables receiving key names.
    """

    def __init__(self, options: ContextOptions, surface: Any = None) -> None:
        self.options = options
        self.surface = surface
        self.injected: str | None = None
        self.frames: dict[int, FrameCallback] = {}
        self.key_listeners: list[KeyListener] = []
        self.closed = False
        self.entry_point_called = False
        self._next_handle = 0
        self.host = HostAPI(self)
        self.globals: dict[str, Any] = {
            "__name__": "__context__",
            "__builtins__": builtins,
            "host": self.host,
            "new_namespace": self.new_namespace,
            "run_entry_point": self.run_entry_point,
        }

    def new_namespace(self) -> dict[str, Any]:
        return {"__name__": "__payload__", "__builtins__": builtins, "host": self.host}

    def run_entry_point(self, namespace: dict[str, Any]) -> bool:
        """Call init_game from the payload namespace, falling back to a host global."""
        entry = namespace.get(ENTRY_POINT)
        if not callable(entry):
            entry = self.globals.get(ENTRY_POINT)
        if not callable(entry):
            logger.warning("Payload loaded, but %s() was not found or called", ENTRY_POINT)
            self.entry_point_called = False
            return False
        entry()
        self.entry_point_called = True
        return True

    # -------------------------
    # Frames and input
    # -------------------------

    def request_frame(self, callback: FrameCallback) -> int:
        self._next_handle += 1
        self.frames[self._next_handle] = callback
        return self._next_handle

    def cancel_frame(self, handle: int | None) -> None:
        if handle is not None:
            self.frames.pop(handle, None)

    def run_frame(self, now_ms: float) -> int:
        """Run callbacks requested before this frame; new requests wait for the next one."""
        pending, self.frames = self.frames, {}
        for handle, callback in pending.items():
            try:
                callback(now_ms)
            except Exception:
                logger.exception("Frame callback %d failed", handle)
        return len(pending)

    def dispatch_key(self, key: str) -> None:
        for listener in list(self.key_listeners):
            try:
                listener(key)
            except Exception:
                logger.exception("Key listener failed for %r", key)

    def cancel_residual(self) -> int:
        """Best-effort cleanup of loop handles and listeners left in this context."""
        cancelled = len(self.frames) + len(self.key_listeners)
        self.frames.clear()
        self.key_listeners.clear()
        if self.globals.pop(LOOP_HANDLE, None) is not None:
            cancelled += 1
        return cancelled

    # -------------------------
    # Loading code
    # -------------------------

    def boot(self, path: str) -> None:
        """Run the pristine payload as a plain script; no injected marker is set."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                source = f.read()
            namespace = self.new_namespace()
            exec(compile(source, path, "exec"), namespace)
            self.run_entry_point(namespace)
        except Exception:
            logger.exception("Pristine payload failed to start from %s", path)

    def inject(self, source: str) -> dict[str, Any]:
        self.injected = source
        self.entry_point_called = False
        try:
            exec(compile(source, "<injected>", "exec"), self.globals)
        except Exception as e:
            logger.exception("Injected module raised while starting")
            return {
                "ok": True,
                "entry_point": self.entry_point_called,
                "warning": f"{type(e).__name__}: {e}",
            }
        return {"ok": True, "entry_point": self.entry_point_called, "warning": None}

    def handle(self, message: dict[str, Any]) -> dict[str, Any]:
        op = message.get("op")
        if op == "read":
            return {"ok": True, "injected": self.injected}
        if op == "reset":
            removed = self.injected is not None
            self.injected = None
            return {"ok": True, "removed": removed, "cancelled": self.cancel_residual()}
        if op == "inject":
            source = message.get("source")
            if not isinstance(source, str):
                return {"ok": False, "error": "inject requires a source string"}
            return self.inject(source)
        if op == "key":
            self.dispatch_key(str(message.get("key", "")))
            return {"ok": True}
        if op == "close":
            self.closed = True
            return {"ok": True}
        return {"ok": False, "error": f"Unknown op: {op}"}

    # -------------------------
    # Main loop
    # -------------------------

    def pump_events(self) -> None:
        if self.surface is None:
            return
        import pygame

        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                logger.info("Game window closed")
                self.closed = True
            elif event.type == pygame.KEYDOWN:
                self.dispatch_key(pygame.key.name(event.key))

    def serve_forever(self, conn: Connection) -> None:
        clock = None
        if self.surface is not None:
            import pygame

            clock = pygame.time.Clock()

        while not self.closed:
            try:
                while conn.poll():
                    conn.send(self.handle(conn.recv()))
            except (EOFError, OSError):
                logger.info("Host connection closed; shutting down context")
                break
            self.pump_events()
            self.run_frame(time.monotonic() * 1000.0)
            if clock is not None:
                import pygame

                pygame.display.flip()
                clock.tick(self.options.fps)
            else:
                time.sleep(1.0 / max(self.options.fps, 1))


def open_window(options: ContextOptions) -> Any:
    os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")
    if options.headless:
        os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
    import pygame

    pygame.init()
    surface = pygame.display.set_mode((options.width, options.height))
    pygame.display.set_caption(options.title)
    return surface


def run_context(conn: Connection, options: dict[str, Any]) -> None:
    """Process target: bring up a context, announce ``load``, then serve until closed."""
    opts = ContextOptions(**options)
    configure_logging(opts.log_level)
    surface = open_window(opts) if opts.window else None
    runtime = HostRuntime(opts, surface=surface)
    if opts.boot_path:
        runtime.boot(opts.boot_path)
    try:
        conn.send({"event": "load"})
        runtime.serve_forever(conn)
    finally:
        if surface is not None:
            import pygame

            pygame.quit()
        conn.close()
