import pytest

from termgenie.errors import ExecTimeoutError, ExecutionCancelled, PaneBusyError, PaneNotFoundError
from termgenie.execution import ExecutionEngine, build_instruction
from termgenie.types import ExecutionRequest
from termgenie.utils import locked, try_locked, write_json_atomic


@pytest.fixture
def engine(backend, tmp_path):
    return ExecutionEngine(backend, tmp_path / "state")


def test_exit_code_zero(engine, backend, genie_pane):
    backend.script("true")

    result = engine.run_sync(genie_pane, "true", 5000)

    assert result.exit_code == 0
    assert not result.timed_out


def test_exit_code_propagates(engine, backend, genie_pane):
    backend.script("exit 7", exit_code=7)

    result = engine.run_sync(genie_pane, "exit 7", 5000)

    assert result.exit_code == 7
    assert not result.timed_out


def test_output_excludes_echoed_instruction(engine, backend, genie_pane):
    backend.script("ls", output="a.txt\nb.txt")

    result = engine.run_sync(genie_pane, "ls", 5000)

    assert result.output == "a.txt\nb.txt"
    assert "wait-for" not in result.output


def test_output_only_from_this_command(engine, backend, genie_pane):
    backend.lines(genie_pane).extend(["old prompt", "old output"])
    backend.script("echo hi", output="hi")

    assert engine.run_sync(genie_pane, "echo hi", 5000).output == "hi"


def test_multiline_command_is_grouped(engine, backend, genie_pane):
    command = "cd /tmp\nls"
    backend.script(command, output="x", exit_code=3)

    result = engine.run_sync(genie_pane, command, 5000)

    sent = backend.sent[-1][1]
    assert sent.startswith("{ cd /tmp\nls\n}; tmux set-buffer")
    assert result.exit_code == 3
    assert result.output == "x"


def test_single_wait_and_no_marker_text(engine, backend, genie_pane):
    backend.script("make", output="built")

    engine.run_sync(genie_pane, "make", 5000)

    assert len(backend.waits) == 1
    channel, timeout = backend.waits[0]
    assert channel.startswith("termgenie-")
    assert timeout == 5.0
    assert len(backend.sent) == 1


def test_channels_are_never_reused(engine, backend, genie_pane):
    engine.run_sync(genie_pane, "true", 5000)
    engine.run_sync(genie_pane, "true", 5000)

    assert backend.waits[0][0] != backend.waits[1][0]


def test_payload_buffer_is_deleted(engine, backend, genie_pane):
    engine.run_sync(genie_pane, "true", 5000)

    assert backend.buffers == {}


@pytest.mark.parametrize("timeout_ms", [100, 60_000])
def test_timeout_waits_once_regardless_of_bound(engine, backend, genie_pane, timeout_ms):
    backend.hang("sleep 1000")

    result = engine.run_sync(genie_pane, "sleep 1000", timeout_ms)

    assert result.timed_out
    assert result.exit_code is None
    assert len(backend.waits) == 1
    assert backend.waits[0][1] == timeout_ms / 1000


def test_timed_out_token_keeps_pane_busy_until_done(engine, backend, genie_pane):
    backend.hang("sleep 1000")
    engine.run_sync(genie_pane, "sleep 1000", 100)

    with pytest.raises(PaneBusyError):
        engine.run_sync(genie_pane, "true", 5000)

    backend.finish_hung()
    result = engine.run_sync(genie_pane, "true", 5000)

    assert result.exit_code == 0
    assert engine.outstanding_token(genie_pane) is None
    assert backend.buffers == {}


def test_interrupted_command_frees_pane(engine, backend, genie_pane):
    backend.hang("sleep 1000")
    engine.run_sync(genie_pane, "sleep 1000", 100)
    backend.abort_hung()

    result = engine.run_sync(genie_pane, "true", 5000)

    assert result.exit_code == 0
    assert engine.outstanding_token(genie_pane) is None


def test_token_past_max_age_is_dropped(backend, genie_pane, tmp_path):
    engine = ExecutionEngine(backend, tmp_path / "state", token_max_age_ms=60_000)
    write_json_atomic(
        engine._ledger_path(genie_pane),
        {"paneId": genie_pane, "token": "old", "startedAt": "2020-01-01T00:00:00.000+00:00"},
    )
    backend.set_command(genie_pane, "vim")

    assert engine.run_sync(genie_pane, "true", 5000).exit_code == 0


def test_recent_token_with_running_command_stays_busy(backend, genie_pane, tmp_path):
    engine = ExecutionEngine(backend, tmp_path / "state", token_max_age_ms=60_000)
    backend.hang("sleep 1000")
    engine.run_sync(genie_pane, "sleep 1000", 100)

    with pytest.raises(PaneBusyError):
        engine.run_sync(genie_pane, "true", 5000)


def test_token_of_vanished_pane_is_dropped(engine, backend, genie_pane):
    backend.hang("sleep 1000")
    engine.run_sync(genie_pane, "sleep 1000", 100)
    backend.remove_pane(genie_pane)

    with pytest.raises(PaneNotFoundError):
        engine.run_sync(genie_pane, "true", 5000)
    assert engine.outstanding_token(genie_pane) is None


def test_concurrent_run_on_same_pane_rejected(engine, genie_pane):
    with locked(engine._lock_path(genie_pane)):
        with pytest.raises(PaneBusyError):
            engine.run_sync(genie_pane, "true", 5000)


def test_lock_released_after_run(engine, genie_pane):
    engine.run_sync(genie_pane, "true", 5000)

    with try_locked(engine._lock_path(genie_pane)) as acquired:
        assert acquired


def test_reserved_reflects_pane_activity(engine, backend, genie_pane):
    with engine.reserved(genie_pane) as free:
        assert free

    with locked(engine._lock_path(genie_pane)):
        with engine.reserved(genie_pane) as free:
            assert not free

    backend.hang("sleep 1000")
    engine.run_sync(genie_pane, "sleep 1000", 100)
    with engine.reserved(genie_pane) as free:
        assert not free


def test_calling_pane_rejected(engine, backend, genie_pane):
    backend.current_pane = genie_pane

    with pytest.raises(PaneBusyError):
        engine.run_sync(genie_pane, "true", 5000)
    assert backend.sent == []


def test_cancel_releases_token_and_lock(engine, backend, genie_pane):
    backend.interrupt_waits = True

    with pytest.raises(ExecutionCancelled):
        engine.run_sync(genie_pane, "sleep 1000", 5000)

    assert engine.outstanding_token(genie_pane) is None
    with try_locked(engine._lock_path(genie_pane)) as acquired:
        assert acquired


def test_missing_pane(engine):
    with pytest.raises(PaneNotFoundError):
        engine.run_sync("%999", "true", 5000)


def test_invalid_timeout(engine, genie_pane):
    with pytest.raises(ValueError):
        engine.run_sync(genie_pane, "true", 0)


def test_default_timeout_from_config(engine, backend, genie_pane):
    engine.run_sync(genie_pane, "true")

    assert backend.waits[0][1] == 120.0


def test_execute_raises_on_timeout(engine, backend, genie_pane):
    backend.hang("sleep 1000")

    with pytest.raises(ExecTimeoutError) as exc:
        engine.execute(genie_pane, "sleep 1000", 250)

    assert exc.value.timeout_ms == 250
    assert "timed out after 250 ms" in str(exc.value)


def test_build_instruction_single_line():
    request = ExecutionRequest(pane_id="%1", command="make test;", timeout_ms=1000, correlation_token="abc")

    assert build_instruction(request) == (
        'make test; tmux set-buffer -b termgenie-abc "$?" \\; wait-for -S termgenie-abc'
    )


def test_trailing_ampersand_is_grouped(engine, backend, genie_pane):
    backend.script("sleep 5 &")

    result = engine.run_sync(genie_pane, "sleep 5 &", 5000)

    assert backend.sent[-1][1].startswith("{ sleep 5 &\n}; tmux set-buffer")
    assert result.exit_code == 0


@pytest.mark.parametrize("command", ["sleep 5 &", "ls # list files", "echo a\necho b"])
def test_build_instruction_groups_unsafe_commands(command):
    request = ExecutionRequest(pane_id="%1", command=command, timeout_ms=1000, correlation_token="abc")

    assert build_instruction(request).startswith(f"{{ {command}\n}}; tmux set-buffer -b termgenie-abc")


def test_build_instruction_keeps_and_list_inline():
    request = ExecutionRequest(pane_id="%1", command="make && make test", timeout_ms=1000, correlation_token="abc")

    assert build_instruction(request).startswith("make && make test; tmux set-buffer")
