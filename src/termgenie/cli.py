"""Command line interface - scripting surface with meaningful exit codes.

`termgenie exec` exits with the command's own status, so shell scripts and
other workers can branch on it. Failures print `Error: <message>` to stderr
and exit 1; an interrupted wait exits 130.

PUBLIC API:
  - cli: Typer application
  - run: Entry point used by __main__
"""

import json
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import get_terminal_config
from .errors import ExecutionCancelled, TermGenieError
from .mailbox import MailboxStore, flush_pending, get_inbox, send_message
from .output import render_inbox, resolution_fields, session_rows, worker_rows
from .resolver import format_resolved_label
from .state import TermGenieState
from .types import Worker
from .utils import now_iso

EXIT_FAILURE = 1
EXIT_CANCELLED = 130

cli = typer.Typer(name="termgenie", help="Orchestrate workers in tmux panes.", no_args_is_help=True, add_completion=False)
msg_cli = typer.Typer(help="Send and read worker messages.", no_args_is_help=True)
workers_cli = typer.Typer(help="Maintain the worker registry.", no_args_is_help=True)
cli.add_typer(msg_cli, name="msg")
cli.add_typer(workers_cli, name="workers")

console = Console()


def _state() -> TermGenieState:
    return TermGenieState(root=Path.cwd())


def _fail(message: str, code: int = EXIT_FAILURE) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(code)


def _print_json(data) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _table(rows: list[dict], headers: list[str]) -> Table:
    table = Table(*headers, box=None, header_style="bold")
    for row in rows:
        table.add_row(*(str(row[h]) for h in headers))
    return table


@cli.command("exec")
def exec_(
    target: Annotated[str, typer.Argument(help="Pane id, session:window, worker id, pane index or session")],
    command: Annotated[str, typer.Argument(help="Shell command to run")],
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Suppress command output and informational messages")] = False,
    timeout_ms: Annotated[Optional[int], typer.Option("--timeout-ms", min=1, help="Wait bound in milliseconds")] = None,
):
    """Run COMMAND in TARGET and exit with its exit code."""
    state = _state()
    try:
        resolution = state.resolver().resolve(target, check_liveness=True)
        result = state.engine().run_sync(resolution.pane_id, command, timeout_ms)
    except ExecutionCancelled as e:
        raise _fail(str(e), EXIT_CANCELLED)
    except TermGenieError as e:
        raise _fail(str(e))

    if result.output and not quiet:
        typer.echo(result.output)

    if result.timed_out:
        bound = timeout_ms if timeout_ms is not None else get_terminal_config().exec_timeout_ms
        raise _fail(f"timed out after {bound} ms")

    if not quiet:
        typer.echo(f"Executed in {format_resolved_label(resolution)}", err=True)
    raise typer.Exit(result.exit_code if result.exit_code is not None else EXIT_FAILURE)


@cli.command("ls")
def ls(as_json: Annotated[bool, typer.Option("--json", help="Print JSON")] = False):
    """List tmux sessions."""
    try:
        sessions = _state().directory().list_sessions()
    except TermGenieError as e:
        raise _fail(str(e))

    if as_json:
        _print_json([s.to_dict() for s in sessions])
        return
    if not sessions:
        console.print("No sessions")
        return
    console.print(_table(session_rows(sessions), ["SESSION ID", "NAME", "WINDOWS", "ATTACHED"]))


@cli.command("resolve")
def resolve(
    target: Annotated[str, typer.Argument(help="Target descriptor")],
    as_json: Annotated[bool, typer.Option("--json", help="Print JSON")] = False,
):
    """Show which pane TARGET resolves to and how."""
    try:
        resolution = _state().resolver().resolve(target, check_liveness=True)
    except TermGenieError as e:
        raise _fail(str(e))

    if as_json:
        _print_json(resolution.to_dict())
        return
    for label, value in resolution_fields(target, resolution):
        typer.echo(f"{label + ':':<14}{value}")


@msg_cli.command("send")
def msg_send(
    body: Annotated[str, typer.Argument(help="Message text")],
    to: Annotated[str, typer.Option("--to", help="Recipient worker id, role or team:role")],
    sender: Annotated[str, typer.Option("--from", help="Sender id")] = "operator",
):
    """Send BODY to a worker. The message is stored even if delivery fails."""
    state = _state()
    try:
        result = send_message(state.root, sender, to, body, backend=state.backend, registry=state.registry())
    except TermGenieError as e:
        raise _fail(str(e))

    if not result.delivered:
        typer.echo(f"Failed to deliver: {result.reason}", err=True)
        typer.echo(f"  Stored as: {result.message_id}", err=True)
        raise typer.Exit(EXIT_FAILURE)

    typer.echo(f'Message sent to "{result.worker_id}".')
    typer.echo(f"  ID: {result.message_id}")


@msg_cli.command("inbox")
def msg_inbox(
    worker: Annotated[str, typer.Argument(help="Worker id")],
    as_json: Annotated[bool, typer.Option("--json", help="Print JSON")] = False,
    unread: Annotated[bool, typer.Option("--unread", help="Only unread messages")] = False,
):
    """Show WORKER's messages, oldest first. Listing does not mark them read."""
    try:
        messages = get_inbox(_state().root, worker)
    except TermGenieError as e:
        raise _fail(str(e))

    if unread:
        messages = [m for m in messages if not m.read]

    if as_json:
        _print_json([m.to_dict() for m in messages])
        return
    if not messages:
        typer.echo(f"No {'unread ' if unread else ''}messages for {worker}")
        return
    typer.echo(render_inbox(messages))


@msg_cli.command("read")
def msg_read(
    worker: Annotated[str, typer.Argument(help="Worker id")],
    message_id: Annotated[str, typer.Argument(help="Message id")],
):
    """Mark a message read."""
    try:
        message = MailboxStore(_state().root).mark_read(worker, message_id)
    except TermGenieError as e:
        raise _fail(str(e))
    typer.echo(f"Marked {message.id} read")


@msg_cli.command("flush")
def msg_flush(worker: Annotated[str, typer.Argument(help="Worker id")]):
    """Retry live delivery of WORKER's pending messages."""
    state = _state()
    try:
        results = flush_pending(state.root, worker, backend=state.backend, registry=state.registry())
    except TermGenieError as e:
        raise _fail(str(e))

    if not results:
        typer.echo(f"No pending messages for {worker}")
        return
    for result in results:
        if result.delivered:
            typer.echo(f"Delivered {result.message_id}")
        else:
            typer.echo(f"Failed to deliver {result.message_id}: {result.reason}", err=True)
    if not all(r.delivered for r in results):
        raise typer.Exit(EXIT_FAILURE)


@workers_cli.command("ls")
def workers_ls(as_json: Annotated[bool, typer.Option("--json", help="Print JSON")] = False):
    """List registered workers."""
    try:
        workers = _state().registry().list()
    except TermGenieError as e:
        raise _fail(str(e))

    if as_json:
        _print_json([w.to_dict() for w in workers])
        return
    if not workers:
        console.print("No workers registered")
        return
    console.print(_table(worker_rows(workers), ["ID", "PANE", "SESSION", "ROLE", "TEAM", "STATE"]))


@workers_cli.command("add")
def workers_add(
    worker_id: Annotated[str, typer.Argument(help="Worker id")],
    target: Annotated[str, typer.Argument(help="Pane id or other target descriptor")],
    session: Annotated[Optional[str], typer.Option("--session", help="Session name to record")] = None,
    role: Annotated[Optional[str], typer.Option("--role", help="Worker role")] = None,
    team: Annotated[Optional[str], typer.Option("--team", help="Team name")] = None,
    worker_state: Annotated[str, typer.Option("--state", help="Worker state; messages are only typed into idle workers")] = "idle",
):
    """Register WORKER_ID as living in TARGET. Does not start anything."""
    state = _state()
    try:
        resolution = state.resolver().resolve(target, check_liveness=True)
        worker = Worker(
            id=worker_id,
            pane_id=resolution.pane_id,
            session=session or resolution.session_name or "",
            started_at=now_iso(),
            role=role,
            team=team,
            state=worker_state,
        )
        state.registry().register(worker)
    except TermGenieError as e:
        raise _fail(str(e))
    typer.echo(f"Registered {worker_id} -> {resolution.pane_id}")


@workers_cli.command("rm")
def workers_rm(worker_id: Annotated[str, typer.Argument(help="Worker id")]):
    """Remove WORKER_ID from the registry. Does not stop anything."""
    try:
        removed = _state().registry().unregister(worker_id)
    except TermGenieError as e:
        raise _fail(str(e))
    if not removed:
        raise _fail(f'Worker "{worker_id}" not found in registry')
    typer.echo(f"Removed {worker_id}")


def run(argv: Optional[list[str]] = None) -> None:
    """Run the command line with argv (defaults to sys.argv[1:])."""
    cli(args=argv if argv is not None else sys.argv[1:], prog_name="termgenie")
