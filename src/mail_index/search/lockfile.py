"""Single-owner lock for an index directory.

Only one process may write an index. The lock is a file created with
O_EXCL that holds the owner's pid; a lock left behind by a process that no
longer runs is treated as stale and reclaimed.
"""

from __future__ import annotations

import contextlib
import logging
import os
from pathlib import Path

from mail_index.search.errors import StoreUnavailableError


logger = logging.getLogger(__name__)


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


class IndexLock:
    """Exclusive ownership of an index directory for the lifetime of an engine."""

    FILENAME = "index.lock"

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.path = self.directory / self.FILENAME
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        if self._held:
            return
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Index directory {self.directory} is not accessible: {exc}"
            raise StoreUnavailableError(msg) from exc

        for _ in range(2):
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
            except FileExistsError:
                holder = self._read_holder()
                if holder is not None and _pid_alive(holder):
                    msg = f"Index {self.directory} is locked by process {holder}"
                    raise StoreUnavailableError(msg) from None
                logger.warning("Removing stale index lock %s (pid %s)", self.path, holder)
                with contextlib.suppress(FileNotFoundError):
                    self.path.unlink()
                continue
            except OSError as exc:
                msg = f"Cannot create index lock {self.path}: {exc}"
                raise StoreUnavailableError(msg) from exc

            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(str(os.getpid()))
            self._held = True
            logger.debug("Acquired index lock %s", self.path)
            return

        msg = f"Could not acquire index lock {self.path}"
        raise StoreUnavailableError(msg)

    def release(self) -> None:
        if not self._held:
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Failed to remove index lock %s: %s", self.path, exc)
        self._held = False

    def _read_holder(self) -> int | None:
        try:
            return int(self.path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None

    def __enter__(self) -> IndexLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
