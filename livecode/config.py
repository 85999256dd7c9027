import os
import logging

from dotenv import load_dotenv
from pydantic import BaseModel


current_dir = os.path.dirname(os.path.abspath(__file__))
root_dir = os.path.dirname(current_dir)
# Load env from the project root first, then fall back to the package dir without overriding
load_dotenv(os.path.join(root_dir, ".env"), override=False)
load_dotenv(os.path.join(current_dir, ".env"), override=False)


DEFAULT_PORT = 3000
DEFAULT_MODEL = "google/gemini-2.5-flash-preview"
DEFAULT_UPSTREAM_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_PAYLOAD_PATH = os.path.join(current_dir, "payload", "game.py")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Process configuration for the relay, the generation client and the game host.

    Attributes:
        port: Port the relay listens on.
        upstream_url: Chat-completions endpoint the relay forwards to.
        upstream_api_key: Bearer credential for the upstream provider. Not validated
            at startup; a missing key surfaces as an upstream auth error.
        model: Model id forwarded when the caller does not name one.
        relay_url: Endpoint the generation client posts to.
        max_attempts: Total generation attempts before giving up.
        backoff_base_seconds: Base of the exponential retry delay.
        min_code_length: Shortest generated source accepted as plausible.
        payload_path: Location of the pristine game source.
        window_enabled: Open a pygame window in the execution context.
        headless: Use SDL's dummy video driver for the window.
        window_width: Game surface width in pixels.
        window_height: Game surface height in pixels.
        fps: Frame rate of the execution context loop.
        reload_timeout_seconds: How long a fresh context may take to finish loading.
        log_level: Level for CLI and context-process logging.
    """

    port: int = DEFAULT_PORT
    upstream_url: str = DEFAULT_UPSTREAM_URL
    upstream_api_key: str | None = None
    model: str = DEFAULT_MODEL
    relay_url: str = f"http://127.0.0.1:{DEFAULT_PORT}/api/chat"
    max_attempts: int = 3
    backoff_base_seconds: float = 1.0
    min_code_length: int = 100
    payload_path: str = DEFAULT_PAYLOAD_PATH
    window_enabled: bool = True
    headless: bool = False
    window_width: int = 800
    window_height: int = 400
    fps: int = 60
    reload_timeout_seconds: float = 30.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        port = int(os.getenv("PORT", str(DEFAULT_PORT)))
        return cls(
            port=port,
            upstream_url=os.getenv("LIVECODE_UPSTREAM_URL") or DEFAULT_UPSTREAM_URL,
            upstream_api_key=os.getenv("OPENROUTER_API_KEY"),
            model=os.getenv("LIVECODE_MODEL") or DEFAULT_MODEL,
            relay_url=os.getenv("LIVECODE_RELAY_URL") or f"http://127.0.0.1:{port}/api/chat",
            max_attempts=int(os.getenv("LIVECODE_MAX_ATTEMPTS", "3")),
            backoff_base_seconds=float(os.getenv("LIVECODE_BACKOFF_BASE", "1.0")),
            min_code_length=int(os.getenv("LIVECODE_MIN_CODE_LENGTH", "100")),
            payload_path=os.getenv("LIVECODE_PAYLOAD_PATH") or DEFAULT_PAYLOAD_PATH,
            window_enabled=_env_bool("LIVECODE_WINDOW", True),
            headless=_env_bool("LIVECODE_HEADLESS", False),
            window_width=int(os.getenv("LIVECODE_WINDOW_WIDTH", "800")),
            window_height=int(os.getenv("LIVECODE_WINDOW_HEIGHT", "400")),
            fps=int(os.getenv("LIVECODE_FPS", "60")),
            reload_timeout_seconds=float(os.getenv("LIVECODE_RELOAD_TIMEOUT", "30")),
            log_level=(os.getenv("LIVECODE_LOG_LEVEL") or "INFO").upper(),
        )


def get_settings() -> Settings:
    return Settings.from_env()


def configure_logging(level: str = "INFO") -> None:
    """Basic stderr logging for processes not running under uvicorn."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
