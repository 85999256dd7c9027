import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from livecode.config import Settings  # noqa: E402


PRISTINE_CODE = '''\
# pristine test game
score = 0
started = False


def init_game():
    global started
    started = True
    host.expose("pristine_started", True)
    host.log.info("pristine game running")
'''


def make_game(color: str) -> str:
    return f'''\
PLAYER_COLOR = "{color}"
score = 0


def init_game():
    host.expose("player_color", PLAYER_COLOR)
    host.log.info("player color is %s", PLAYER_COLOR)
'''


def sse_body(*deltas: str, done: bool = True) -> bytes:
    """Build an upstream-style SSE body carrying the given content deltas."""
    lines = [": OPENROUTER PROCESSING", ""]
    lines.append("data: " + json.dumps({"choices": [{"delta": {"role": "assistant"}}]}))
    lines.append("")
    for delta in deltas:
        lines.append("data: " + json.dumps({"choices": [{"delta": {"content": delta}}]}))
        lines.append("")
    if done:
        lines.append("data: [DONE]")
        lines.append("")
    return ("\n".join(lines) + "\n").encode("utf-8")


@pytest.fixture
def pristine_code() -> str:
    return PRISTINE_CODE


@pytest.fixture
def blue_code() -> str:
    return make_game("blue")


@pytest.fixture
def payload_file(tmp_path) -> Path:
    path = tmp_path / "game.py"
    path.write_text(PRISTINE_CODE + "\n\n", encoding="utf-8")
    return path


@pytest.fixture
def settings(payload_file) -> Settings:
    return Settings(
        upstream_api_key="test-key",
        upstream_url="https://upstream.test/v1/chat/completions",
        relay_url="http://relay.test/api/chat",
        payload_path=str(payload_file),
        window_enabled=False,
        headless=True,
        fps=120,
        reload_timeout_seconds=30.0,
    )


class LocalContext:
    """In-process stand-in for ContextProcess, driving a HostRuntime directly."""

    instances: list["LocalContext"] = []

    def __init__(self, options):
        from livecode.host.runtime import HostRuntime

        self.options = options
        self.runtime = HostRuntime(options)
        if options.boot_path:
            self.runtime.boot(options.boot_path)
        self.requests = []
        LocalContext.instances.append(self)

    @property
    def alive(self):
        return not self.runtime.closed

    def wait_loaded(self, timeout):
        pass

    def request(self, message):
        self.requests.append(message["op"])
        return self.runtime.handle(message)

    def close(self):
        self.runtime.closed = True


@pytest.fixture(autouse=True)
def _reset_local_contexts():
    LocalContext.instances = []
