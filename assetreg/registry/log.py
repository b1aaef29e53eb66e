# assetreg/registry/log.py
"""
Durable, append-only registration logs.

A log holds one entry per registration, in handle order:

    {"handle": 0, "cid": "bafy...", "registrant": null, "registered_at": 1700000000.0}

Replaying the log is sufficient to rebuild the registry. An append either
becomes durable as a whole or leaves the log exactly as it was. Replay never
modifies the log; only the writer repairs it, through recover().
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from ..errors import PersistenceFailure

logger = logging.getLogger(__name__)


class RegistrationLog(ABC):
    """
    Base class for registration logs.

    Subclasses implement append() and replay().
    """

    @abstractmethod
    def append(self, entry: Dict[str, Any]) -> None:
        """
        Durably append one entry.

        Raises:
            PersistenceFailure: if the entry could not be committed. The log
                must be unchanged in that case.
        """
        pass

    @abstractmethod
    def replay(self) -> Iterator[Dict[str, Any]]:
        """Yield committed entries in append order. Must not modify the log."""
        pass

    def recover(self) -> int:
        """
        Repair the log before a writer starts appending.

        Returns:
            Number of bytes discarded
        """
        return 0


class MemoryLog(RegistrationLog):
    """In-process log. Nothing survives the process."""

    def __init__(self, entries: List[Dict[str, Any]] = None):
        self._entries: List[Dict[str, Any]] = [dict(e) for e in entries or []]

    def append(self, entry: Dict[str, Any]) -> None:
        self._entries.append(dict(entry))

    def replay(self) -> Iterator[Dict[str, Any]]:
        for entry in self._entries:
            yield dict(entry)

    def __len__(self) -> int:
        return len(self._entries)


def _parse_tail(tail: bytes) -> Optional[Dict[str, Any]]:
    """Entry in an unterminated last line, or None if it is torn."""
    try:
        entry = json.loads(tail)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return entry if isinstance(entry, dict) else None


class FileLog(RegistrationLog):
    """
    JSON-lines log file.

    Each append is written, flushed and fsync'ed before it returns. A failed
    write is truncated back to the previous end of file.

    A last line without a newline is kept when it parses as an entry and
    reported as torn (torn_bytes) when it does not. Torn bytes are skipped by
    replay() and removed only by recover().
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.torn_bytes = 0

    def _read(self) -> bytes:
        if not self.path.exists():
            return b""
        try:
            return self.path.read_bytes()
        except OSError as e:
            raise PersistenceFailure(f"Cannot read log {self.path}: {e}") from e

    def append(self, entry: Dict[str, Any]) -> None:
        line = (json.dumps(entry, separators=(",", ":")) + "\n").encode("utf-8")
        try:
            f = open(self.path, "a+b")
        except OSError as e:
            raise PersistenceFailure(f"Cannot open log {self.path}: {e}") from e

        with f:
            offset = None
            try:
                offset = f.seek(0, os.SEEK_END)
                if offset:
                    f.seek(offset - 1)
                    if f.read(1) != b"\n":
                        line = b"\n" + line
                f.write(line)
                f.flush()
                os.fsync(f.fileno())
            except OSError as e:
                if offset is not None:
                    self._rollback(f, offset)
                raise PersistenceFailure(f"Failed to append to {self.path}: {e}") from e

    def _rollback(self, f, offset: int) -> None:
        try:
            f.truncate(offset)
        except OSError:
            logger.exception(f"Could not truncate {self.path} to {offset} bytes")

    def recover(self) -> int:
        """Terminate a complete last entry, or cut off a torn one."""
        data = self._read()
        end = data.rfind(b"\n") + 1
        tail = data[end:]
        if not tail:
            return 0

        try:
            with open(self.path, "r+b") as f:
                if _parse_tail(tail) is not None:
                    f.seek(0, os.SEEK_END)
                    f.write(b"\n")
                    discarded = 0
                else:
                    logger.warning(
                        f"Dropping {len(tail)} bytes of unterminated entry at end of {self.path}"
                    )
                    f.truncate(end)
                    discarded = len(tail)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise PersistenceFailure(f"Cannot repair log {self.path}: {e}") from e

        self.torn_bytes = 0
        return discarded

    def replay(self) -> Iterator[Dict[str, Any]]:
        data = self._read()
        end = data.rfind(b"\n") + 1
        body, tail = data[:end], data[end:]
        self.torn_bytes = 0

        for lineno, line in enumerate(body.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError as e:
                raise PersistenceFailure(f"{self.path}:{lineno}: corrupt entry: {e}") from e
            if not isinstance(entry, dict):
                raise PersistenceFailure(f"{self.path}:{lineno}: entry is not an object")
            yield entry

        if tail.strip():
            entry = _parse_tail(tail)
            if entry is None:
                self.torn_bytes = len(tail)
                logger.warning(f"Ignoring {len(tail)} bytes of unterminated entry at end of {self.path}")
            else:
                yield entry
