import json

import pytest
from typer.testing import CliRunner

from termgenie import cli as cli_module
from termgenie.cli import cli
from termgenie.config import reset_config_manager
from termgenie.mailbox import MailboxStore
from termgenie.state import TermGenieState

runner = CliRunner()


@pytest.fixture
def state(backend, root, monkeypatch, tmp_path):
    (tmp_path / "termgenie.toml").write_text(f'[terminal]\nstate_dir = "{tmp_path / "state"}"\n')
    reset_config_manager()
    state = TermGenieState(backend=backend, root=root)
    monkeypatch.setattr(cli_module, "_state", lambda: state)
    return state


def test_exec_mirrors_exit_code(state, backend, genie_pane):
    backend.script("make test", output="3 failed", exit_code=7)

    result = runner.invoke(cli, ["exec", "genie", "make test"])

    assert result.exit_code == 7
    assert "3 failed" in result.output
    assert f"Executed in genie (pane {genie_pane}, session genie)" in result.output


def test_exec_success_quiet(state, backend):
    backend.script("true", output="noise")

    result = runner.invoke(cli, ["exec", "-q", "genie", "true"])

    assert result.exit_code == 0
    assert "noise" not in result.output
    assert "Executed in" not in result.output


def test_exec_timeout_is_reported_distinctly(state, backend):
    backend.hang("sleep 1000")

    result = runner.invoke(cli, ["exec", "genie", "sleep 1000", "--timeout-ms", "100"])

    assert result.exit_code == 1
    assert "Error: timed out after 100 ms" in result.output


def test_exec_unresolvable_target(state):
    result = runner.invoke(cli, ["exec", "ghost", "true"])

    assert result.exit_code == 1
    assert "Error:" in result.output


def test_exec_cancelled_exits_130(state, backend):
    backend.interrupt_waits = True

    result = runner.invoke(cli, ["exec", "genie", "sleep 1000"])

    assert result.exit_code == 130


def test_ls_json(state):
    result = runner.invoke(cli, ["ls", "--json"])

    assert result.exit_code == 0
    sessions = json.loads(result.output)
    assert [s["name"] for s in sessions] == ["genie"]
    assert set(sessions[0]) == {"id", "name", "windows", "attached"}


def test_ls_table(state):
    result = runner.invoke(cli, ["ls"])

    assert result.exit_code == 0
    assert "SESSION ID" in result.output
    assert "genie" in result.output


def test_resolve_text_and_json(state, register, genie_pane):
    register("bd-42", genie_pane)

    text = runner.invoke(cli, ["resolve", "bd-42"])
    as_json = runner.invoke(cli, ["resolve", "bd-42", "--json"])

    assert text.exit_code == 0
    assert "Resolved via: workerRegistry" in text.output
    assert f"Pane ID:      {genie_pane}" in text.output
    assert "Worker ID:    bd-42" in text.output
    assert json.loads(as_json.output)["workerId"] == "bd-42"


def test_msg_send_and_inbox(state, register, genie_pane, root):
    register("w1", genie_pane)

    sent = runner.invoke(cli, ["msg", "send", "hello", "--to", "w1"])
    inbox = runner.invoke(cli, ["msg", "inbox", "w1"])

    assert sent.exit_code == 0
    assert 'Message sent to "w1".' in sent.output
    message_id = MailboxStore(root).inbox("w1")[0].id
    assert f"  ID: {message_id}" in sent.output
    assert "[UNREAD] [delivered]" in inbox.output
    assert "from=operator" in inbox.output
    assert "hello" in inbox.output


def test_msg_send_failure_exits_1_but_stores(state, root):
    result = runner.invoke(cli, ["msg", "send", "hello", "--to", "ghost", "--from", "lead"])

    assert result.exit_code == 1
    assert "Failed to deliver:" in result.output
    stored = MailboxStore(root).inbox("ghost")
    assert [m.sender for m in stored] == ["lead"]
    assert stored[0].id in result.output


def test_msg_inbox_unread_json(state, root):
    store = MailboxStore(root)
    first = store.create("operator", "w1", "one")
    store.create("operator", "w1", "two")
    store.mark_read("w1", first.id)

    result = runner.invoke(cli, ["msg", "inbox", "w1", "--unread", "--json"])

    assert result.exit_code == 0
    assert [m["body"] for m in json.loads(result.output)] == ["two"]


def test_msg_inbox_store_fault_is_reported(state, root):
    path = MailboxStore(root).path_for("w1")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("{broken")

    result = runner.invoke(cli, ["msg", "inbox", "w1"])

    assert result.exit_code == 1
    assert "Error:" in result.output


def test_msg_read(state, root):
    message = MailboxStore(root).create("operator", "w1", "hi")

    result = runner.invoke(cli, ["msg", "read", "w1", message.id])

    assert result.exit_code == 0
    assert MailboxStore(root).get("w1", message.id).read is True


def test_msg_flush(state, register, genie_pane, root):
    MailboxStore(root).create("operator", "w1", "queued")
    register("w1", genie_pane)

    result = runner.invoke(cli, ["msg", "flush", "w1"])

    assert result.exit_code == 0
    assert "Delivered" in result.output
    assert MailboxStore(root).pending("w1") == []


def test_workers_add_ls_rm(state, genie_pane):
    added = runner.invoke(cli, ["workers", "add", "bd-42", genie_pane, "--role", "implementor"])
    listed = runner.invoke(cli, ["workers", "ls", "--json"])
    removed = runner.invoke(cli, ["workers", "rm", "bd-42"])
    missing = runner.invoke(cli, ["workers", "rm", "bd-42"])

    assert added.exit_code == 0
    workers = json.loads(listed.output)
    assert workers[0]["id"] == "bd-42"
    assert workers[0]["paneId"] == genie_pane
    assert workers[0]["role"] == "implementor"
    assert removed.exit_code == 0
    assert missing.exit_code == 1


@pytest.mark.parametrize("args", [["msg", "inbox", ""], ["msg", "read", "", "msg-1-abcd"]])
def test_msg_empty_worker_is_an_error(state, args):
    result = runner.invoke(cli, args)

    assert result.exit_code == 1
    assert "Error: worker id must not be empty" in result.output


def test_exec_rejects_non_positive_timeout(state):
    result = runner.invoke(cli, ["exec", "genie", "true", "--timeout-ms", "0"])

    assert result.exit_code == 2


def test_workers_add_records_state(state, genie_pane, registry):
    result = runner.invoke(cli, ["workers", "add", "w1", genie_pane, "--state", "working"])

    assert result.exit_code == 0
    assert registry.get("w1").state == "working"
