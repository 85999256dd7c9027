import pytest

from conftest import PRISTINE_CODE, LocalContext, make_game
from livecode.errors import ContextUnavailable, ReadError, ReloadFailed
from livecode.host.bridge import ContextProcess, ExecutionHostBridge
from livecode.host.envelope import wrap
from livecode.host.runtime import HostRuntime
from livecode.ui import HostUI


@pytest.fixture
def bridge(settings):
    return ExecutionHostBridge(settings, HostUI(), spawn=LocalContext)


@pytest.mark.asyncio
async def test_fresh_start_reads_pristine_fallback(bridge):
    await bridge.start()
    assert await bridge.read_current_code() == PRISTINE_CODE.strip()
    assert LocalContext.instances[0].runtime.globals["pristine_started"] is True


@pytest.mark.asyncio
async def test_read_without_a_context_uses_fallback(bridge):
    assert await bridge.read_current_code() == PRISTINE_CODE.strip()


@pytest.mark.asyncio
async def test_apply_recreates_context_and_reads_back_exact_code(bridge):
    await bridge.start()
    first = LocalContext.instances[0]
    blue = make_game("blue")

    await bridge.apply_code(blue)

    assert first.runtime.closed
    fresh = LocalContext.instances[-1]
    assert fresh is not first
    assert fresh.options.boot_path is None
    assert fresh.requests[:2] == ["reset", "inject"]
    assert fresh.runtime.globals["player_color"] == "blue"
    assert "pristine_started" not in fresh.runtime.globals
    assert await bridge.read_current_code() == blue
    assert bridge.ui.state.notice == "Changes applied"
    assert bridge.ui.state.overlay is False


@pytest.mark.asyncio
async def test_apply_then_restore_previous(bridge):
    await bridge.start()
    await bridge.apply_code(make_game("blue"))
    await bridge.apply_code(make_game("red"))
    await bridge.apply_code(make_game("blue"))
    assert await bridge.read_current_code() == make_game("blue")
    assert LocalContext.instances[-1].runtime.globals["player_color"] == "blue"


@pytest.mark.asyncio
async def test_restart_boots_pristine_code(bridge):
    await bridge.start()
    await bridge.apply_code(make_game("blue"))
    await bridge.restart()
    latest = LocalContext.instances[-1]
    assert latest.options.boot_path == bridge.fallback_path
    assert latest.runtime.injected is None
    assert await bridge.read_current_code() == PRISTINE_CODE.strip()


@pytest.mark.asyncio
async def test_unmatched_envelope_falls_back_to_pristine(bridge, caplog):
    await bridge.start()
    LocalContext.instances[-1].runtime.injected = "print('not an envelope')"
    with caplog.at_level("WARNING", logger="livecode.host.bridge"):
        code = await bridge.read_current_code()
    assert code == PRISTINE_CODE.strip()
    assert "envelope did not match" in caplog.text


@pytest.mark.asyncio
async def test_missing_init_game_is_only_a_warning(bridge, caplog):
    await bridge.start()
    with caplog.at_level("WARNING", logger="livecode.host.bridge"):
        await bridge.apply_code("x = 1\n" * 30)
    assert "init_game() was not found" in caplog.text
    assert await bridge.read_current_code() == "x = 1\n" * 30


@pytest.mark.asyncio
async def test_read_fails_when_fallback_is_missing(settings, tmp_path):
    settings = settings.model_copy(update={"payload_path": str(tmp_path / "nope.py")})
    bridge = ExecutionHostBridge(settings, spawn=LocalContext)
    with pytest.raises(ReadError, match="Failed to get current game code"):
        await bridge.read_current_code()


@pytest.mark.asyncio
async def test_read_fails_when_fallback_is_too_short(settings, payload_file):
    payload_file.write_text("  x=1  \n", encoding="utf-8")
    bridge = ExecutionHostBridge(settings, spawn=LocalContext)
    with pytest.raises(ReadError):
        await bridge.read_current_code()


@pytest.mark.asyncio
async def test_spawn_failure_is_reload_failed(settings):
    def broken_spawn(options):
        raise OSError("no more processes")

    ui = HostUI()
    bridge = ExecutionHostBridge(settings, ui, spawn=broken_spawn)
    with pytest.raises(ReloadFailed, match="no more processes"):
        await bridge.apply_code(make_game("blue"))
    assert ui.state.overlay is False
    assert ui.state.notice is None


@pytest.mark.asyncio
async def test_context_dying_while_loading_is_reload_failed(settings):
    class DyingContext(LocalContext):
        def wait_loaded(self, timeout):
            raise EOFError("child exited")

    bridge = ExecutionHostBridge(settings, spawn=DyingContext)
    with pytest.raises(ReloadFailed):
        await bridge.apply_code(make_game("blue"))


@pytest.mark.asyncio
async def test_unreachable_context_after_reload(settings):
    class DeadContext(LocalContext):
        @property
        def alive(self):
            return False

    bridge = ExecutionHostBridge(settings, spawn=DeadContext)
    with pytest.raises(ContextUnavailable):
        await bridge.apply_code(make_game("blue"))


@pytest.mark.asyncio
async def test_broken_pipe_during_inject(settings):
    class BrokenPipeContext(LocalContext):
        def request(self, message):
            raise BrokenPipeError("pipe closed")

    bridge = ExecutionHostBridge(settings, spawn=BrokenPipeContext)
    with pytest.raises(ContextUnavailable, match="stopped answering"):
        await bridge.apply_code(make_game("blue"))


@pytest.mark.asyncio
async def test_real_context_process_round_trip(settings):
    bridge = ExecutionHostBridge(settings, spawn=ContextProcess)
    try:
        await bridge.start()
        assert await bridge.read_current_code() == PRISTINE_CODE.strip()
        await bridge.apply_code(make_game("blue"))
        assert await bridge.read_current_code() == make_game("blue")
    finally:
        await bridge.close()


def test_wrap_is_what_the_context_stores(settings):
    rt = HostRuntime(ExecutionHostBridge(settings)._options(boot=False))
    rt.handle({"op": "inject", "source": wrap(PRISTINE_CODE)})
    assert rt.handle({"op": "read"})["injected"] == wrap(PRISTINE_CODE)
