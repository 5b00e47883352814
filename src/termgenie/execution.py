"""Synchronous execution engine - run a command in a pane and wait for it.

The command is typed into the pane together with a completion signal:

    <command>; tmux set-buffer -b termgenie-<token> "$?" \\; wait-for -S termgenie-<token>

The engine then blocks in exactly one `tmux wait-for termgenie-<token>`,
bounded by the timeout. The shell fires the channel when the command ends,
and the exit status is read back from the paired buffer. Nothing is polled
and no marker text is printed into the pane.

One execution per pane at a time: a lock file rejects concurrent callers,
and a ledger remembers a token left outstanding by a timeout until the
command it belongs to has finished or was interrupted.

PUBLIC API:
  - ExecutionEngine: Engine bound to a Backend and a state directory
  - build_instruction: Composite instruction for a request
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from .config import get_terminal_config
from .errors import ExecTimeoutError, ExecutionCancelled, PaneBusyError, PaneNotFoundError
from .tmux.backend import Backend, at_shell_prompt
from .types import ExecutionRequest, ExecutionResult
from .utils import now_iso, read_json, truncate_command, try_locked, write_json_atomic

logger = logging.getLogger(__name__)


def _needs_group(command: str) -> bool:
    """Whether command cannot simply be followed by "; <signal>".

    A trailing "&" would make "&;" a syntax error, and a "#" may start a
    comment that swallows the signal.
    """
    if "\n" in command or "#" in command:
        return True
    return command.endswith("&") and not command.endswith("&&")


def build_instruction(request: ExecutionRequest) -> str:
    """Compose the text typed into the pane for a request.

    Multi-line commands, commands ending in "&" and commands that may carry
    a comment are grouped so the signal follows the whole block.
    """
    signal = f'tmux set-buffer -b {request.payload_buffer} "$?" \\; wait-for -S {request.channel}'
    command = request.command.rstrip()
    if _needs_group(command):
        return f"{{ {command}\n}}; {signal}"
    return f"{command.rstrip(';').rstrip()}; {signal}"


def _parse_exit_code(payload: Optional[str]) -> Optional[int]:
    if payload is None:
        return None
    try:
        return int(payload.strip())
    except ValueError:
        logger.warning(f"Unexpected exit status payload: {payload!r}")
        return None


def _strip_echo(captured: str, instruction: str) -> str:
    """Drop the echoed instruction lines and trailing blank lines."""
    lines = captured.split("\n")
    echoed = instruction.count("\n") + 1
    body = lines[echoed:]
    while body and not body[-1].strip():
        body.pop()
    return "\n".join(line.rstrip() for line in body)


class ExecutionEngine:
    """Run commands synchronously in tmux panes.

    Attributes:
        backend: Backend that owns the panes.
        state_dir: Directory holding per-pane lock and ledger files.
        token_max_age_ms: Age after which an outstanding token is dropped.
    """

    def __init__(self, backend: Backend, state_dir: Path | None = None, token_max_age_ms: Optional[int] = None):
        self.backend = backend
        config = get_terminal_config()
        base = Path(state_dir) if state_dir is not None else config.state_dir
        self.state_dir = base / "exec"
        self.token_max_age_ms = token_max_age_ms if token_max_age_ms is not None else config.token_max_age_ms

    def _key(self, pane_id: str) -> str:
        return "pane-" + pane_id.lstrip("%")

    def _lock_path(self, pane_id: str) -> Path:
        return self.state_dir / f"{self._key(pane_id)}.lock"

    def _ledger_path(self, pane_id: str) -> Path:
        return self.state_dir / f"{self._key(pane_id)}.json"

    def outstanding_token(self, pane_id: str) -> Optional[str]:
        """Correlation token of an unfinished execution in the pane, if any."""
        return read_json(self._ledger_path(pane_id)).get("token") or None

    def _record(self, request: ExecutionRequest) -> None:
        write_json_atomic(
            self._ledger_path(request.pane_id),
            {
                "paneId": request.pane_id,
                "token": request.correlation_token,
                "command": truncate_command(request.command, 200),
                "timeoutMs": request.timeout_ms,
                "startedAt": now_iso(),
            },
        )

    def _release(self, pane_id: str) -> None:
        self._ledger_path(pane_id).unlink(missing_ok=True)

    def _ledger_age_ms(self, ledger: dict) -> Optional[float]:
        try:
            started = datetime.fromisoformat(ledger["startedAt"])
        except (KeyError, TypeError, ValueError):
            return None
        return (datetime.now(timezone.utc) - started).total_seconds() * 1000

    def _retire_stale(self, pane_id: str) -> None:
        """Retire a token left by a timed-out run once its command is over.

        The command is over when its payload buffer exists, when the pane is
        gone, or when the pane is back at a shell prompt (the command was
        interrupted before it could signal). A token older than
        token_max_age_ms is dropped regardless.

        Raises:
            PaneBusyError: The earlier command is still running.
        """
        ledger = read_json(self._ledger_path(pane_id))
        token = ledger.get("token")
        if not token:
            return

        payload_buffer = f"termgenie-{token}"
        if self.backend.read_buffer(payload_buffer) is not None:
            logger.info(f"Retiring completed token {token} on {pane_id}")
            self.backend.delete_buffer(payload_buffer)
            self._release(pane_id)
            return

        if not any(p.id == pane_id for p in self.backend.list_all_panes()):
            logger.info(f"Dropping token {token}: pane {pane_id} no longer exists")
            self._release(pane_id)
            return

        if at_shell_prompt(self.backend, pane_id):
            logger.info(f"Dropping token {token}: {pane_id} is back at a shell prompt without signalling")
            self._release(pane_id)
            return

        age_ms = self._ledger_age_ms(ledger)
        if age_ms is None or age_ms > self.token_max_age_ms:
            logger.warning(f"Dropping token {token} on {pane_id}: older than {self.token_max_age_ms}ms")
            self._release(pane_id)
            return

        raise PaneBusyError(f"Pane {pane_id} is still running an earlier command that timed out (token {token})")

    @contextmanager
    def reserved(self, pane_id: str) -> Iterator[bool]:
        """Hold the pane's execution lock for a short write into the pane.

        Yields False when an execution is in progress or a timed-out
        command is still running there. The caller must not write then.
        """
        with try_locked(self._lock_path(pane_id)) as acquired:
            if not acquired:
                yield False
                return
            try:
                self._retire_stale(pane_id)
            except PaneBusyError:
                yield False
                return
            yield True

    def run_sync(self, pane_id: str, command: str, timeout_ms: Optional[int] = None) -> ExecutionResult:
        """Execute command in a pane and block until it completes or times out.

        Args:
            pane_id: Target pane, e.g. "%17".
            command: Shell command. May span several lines.
            timeout_ms: Wait bound. Defaults to the configured exec timeout.

        Returns:
            ExecutionResult. On timeout, timed_out is True, exit_code is None
            and output holds whatever the pane showed so far. The command
            keeps running.

        Raises:
            PaneBusyError: Another execution is outstanding in this pane, or
                the pane is the caller's own.
            PaneNotFoundError: The pane does not exist.
            ExecutionCancelled: The wait was interrupted.
        """
        if timeout_ms is None:
            timeout_ms = get_terminal_config().exec_timeout_ms
        if timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {timeout_ms}")

        if self.backend.current_pane_id() == pane_id:
            raise PaneBusyError(f"Refusing to execute in {pane_id}: it is the calling pane and would wait on itself")

        with try_locked(self._lock_path(pane_id)) as acquired:
            if not acquired:
                raise PaneBusyError(f"Pane {pane_id} already has an execution in progress")
            self._retire_stale(pane_id)

            request = ExecutionRequest(
                pane_id=pane_id,
                command=command,
                timeout_ms=timeout_ms,
                correlation_token=uuid.uuid4().hex,
            )
            return self._run(request)

    def _run(self, request: ExecutionRequest) -> ExecutionResult:
        pane_id = request.pane_id
        start = self.backend.cursor_position(pane_id)
        instruction = build_instruction(request)

        self._record(request)
        if not self.backend.send_text(pane_id, instruction):
            self._release(pane_id)
            raise PaneNotFoundError(f"Failed to send command to {pane_id}")
        logger.debug(f"Sent {truncate_command(request.command)!r} to {pane_id}, waiting on {request.channel}")

        try:
            completed = self.backend.wait_for(request.channel, request.timeout_ms / 1000)
        except KeyboardInterrupt:
            self._release(pane_id)
            logger.info(f"Execution in {pane_id} cancelled (token {request.correlation_token})")
            raise ExecutionCancelled(f"Cancelled waiting for {pane_id}") from None

        end = self.backend.cursor_position(pane_id)
        output = _strip_echo(self.backend.capture_between(pane_id, start, end), instruction)

        if not completed:
            # Token stays in the ledger until the command finishes
            logger.warning(f"Execution in {pane_id} timed out after {request.timeout_ms}ms")
            return ExecutionResult(output=output, exit_code=None, timed_out=True)

        exit_code = _parse_exit_code(self.backend.read_buffer(request.payload_buffer))
        self.backend.delete_buffer(request.payload_buffer)
        self._release(pane_id)
        logger.debug(f"Execution in {pane_id} finished with exit code {exit_code}")
        return ExecutionResult(output=output, exit_code=exit_code)

    def execute(self, pane_id: str, command: str, timeout_ms: Optional[int] = None) -> ExecutionResult:
        """Like run_sync, but a timeout raises ExecTimeoutError.

        Raises:
            ExecTimeoutError: The command did not finish within timeout_ms.
        """
        if timeout_ms is None:
            timeout_ms = get_terminal_config().exec_timeout_ms
        result = self.run_sync(pane_id, command, timeout_ms)
        if result.timed_out:
            raise ExecTimeoutError(f"timed out after {timeout_ms} ms", timeout_ms=timeout_ms, output=result.output)
        return result
