"""JSON file persistence shared by the stores.

Several processes (API workers, CLI activations, the cron sweep) may share
one store directory. Every store mutation therefore runs inside locked():
an exclusive flock on a sidecar ".lock" file, during which the store
re-reads the document, applies its change and writes it back. Writes go
through a temp file and os.replace, so readers never see a partial
document and can load without taking the lock.

Failures raise PersistenceError instead of being logged and dropped: a
store that cannot persist is an infrastructure outage.
"""

import fcntl
import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from audit_system.errors import PersistenceError


class JsonPersistence:
    """Read/write one JSON document; a no-op when no path is configured."""

    def __init__(self, path: Optional[str | Path] = None) -> None:
        self.path = Path(path) if path else None

    @property
    def enabled(self) -> bool:
        return self.path is not None

    @property
    def lock_path(self) -> Optional[Path]:
        if not self.path:
            return None
        return self.path.with_suffix(self.path.suffix + ".lock")

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the document's exclusive cross-process lock.

        The body must not await: the lock is held by this process, and a
        second store instance in the same process would block on it.
        """
        if not self.path:
            yield
            return

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            handle = open(self.lock_path, "a")
        except OSError as e:
            raise PersistenceError(f"failed to open lock {self.lock_path}: {e}") from e

        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()

    def load(self) -> Optional[dict[str, Any]]:
        if not self.path or not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"failed to load {self.path}: {e}") from e

    def save(self, data: dict[str, Any]) -> None:
        if not self.path:
            return
        tmp_path = self.path.with_suffix(self.path.suffix + f".{os.getpid()}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError(f"failed to write {self.path}: {e}") from e


def store_file(store_dir: Optional[str], name: str) -> Optional[Path]:
    """Resolve a store's JSON file under the configured store directory."""
    if not store_dir:
        return None
    return Path(store_dir) / f"{name}.json"
