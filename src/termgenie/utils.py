"""Shared helpers: cross-process file locks, atomic JSON publish, timestamps.

PUBLIC API:
  - locked: Exclusive flock held for the duration of a with-block
  - try_locked: Non-blocking variant, yields False when the lock is held elsewhere
  - read_json: Read a JSON document, raising StoreFaultError on corruption
  - write_json_atomic: Write-then-rename publish of a JSON document
  - now_iso: Current UTC time as ISO 8601
  - truncate_command: Shorten a command for display
"""

import fcntl
import json
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from .errors import StoreFaultError


@contextmanager
def locked(lock_path: Path) -> Iterator[None]:
    """Hold an exclusive flock on lock_path.

    The lock is released when the process exits, so a crashed holder never
    leaves it stuck.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    f = open(lock_path, "a+", encoding="utf-8")
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_EX)
        yield
    finally:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        f.close()


@contextmanager
def try_locked(lock_path: Path) -> Iterator[bool]:
    """Try to take an exclusive flock without blocking.

    Yields True if the lock was acquired, False if another holder has it.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    f = open(lock_path, "a+", encoding="utf-8")
    try:
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            yield False
            return
        try:
            yield True
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    finally:
        f.close()


def read_json(path: Path) -> dict[str, Any]:
    """Read a JSON object from path. Missing file reads as {}.

    Raises:
        StoreFaultError: If the file cannot be read or is not a JSON object.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:
        raise StoreFaultError(f"failed to read {path}: {e}") from e
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise StoreFaultError(f"corrupt JSON in {path}: {e}") from e
    if not isinstance(data, dict):
        raise StoreFaultError(f"unexpected document in {path}: expected an object")
    return data


def write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    """Publish data to path via a temp file and os.replace.

    Readers observe either the previous document or the new one in full.
    Callers serialise writers with locked().
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError as e:
        raise StoreFaultError(f"failed to write {path}: {e}") from e


def now_iso() -> str:
    """Current UTC time, ISO 8601 with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def truncate_command(command: str, limit: int = 50) -> str:
    """Shorten a command for display in frontmatter and labels."""
    command = command.replace("\n", " ")
    return command[:limit] + ("..." if len(command) > limit else "")
