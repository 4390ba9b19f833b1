"""Local state store with an exclusive lease per deployment target."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import sys
import tempfile
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, TYPE_CHECKING

from deploy_orchestrator.core.state import StateSnapshot
from deploy_orchestrator.engine.errors import AlreadyLockedError, StateLockError

if TYPE_CHECKING:
    from types import TracebackType

try:
    import fcntl  # type: ignore[attr-defined]
except ImportError:  # pragma: no cover
    fcntl = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)


class Lease:
    """Exclusive claim on a state target.

    The claim lives as long as the lock file handle stays open: it ends on
    :meth:`release` or when the holding process exits.
    """

    def __init__(self, store: StateStore, handle: IO[str], owner: str) -> None:
        self._store = store
        self._handle: IO[str] | None = handle
        self.owner = owner
        self.token = str(uuid.uuid4())
        self.acquired_at = datetime.now(UTC)

    @property
    def active(self) -> bool:
        return self._handle is not None

    def __enter__(self) -> Lease:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def describe(self) -> str:
        return f"{self.owner} since {self.acquired_at.isoformat()} (token {self.token})"

    def release(self) -> None:
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        try:
            handle.seek(0)
            handle.truncate()
            handle.flush()
            _unlock(handle)
        finally:
            handle.close()
            self._store._forget(self)
        logger.debug("Lease released: %s", self.token)


def _try_lock(handle: IO[str]) -> bool:
    if fcntl is not None:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        return True

    if sys.platform == "win32":  # pragma: no cover
        import msvcrt

        try:
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
        except OSError:
            return False
        return True

    raise StateLockError("State locking is not supported on this platform")


def _unlock(handle: IO[str]) -> None:
    if fcntl is not None:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        return

    if sys.platform == "win32":  # pragma: no cover
        import msvcrt

        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)


class StateStore:
    """Persists state snapshots for one deployment target as a JSON file.

    - ``load`` / ``load_or_create`` read the last saved snapshot
    - ``save`` writes atomically (temp file + fsync + rename) and keeps a
      ``.backup`` of the previous snapshot
    - ``acquire`` hands out the single lease that ``save`` requires
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock_path = Path(str(self._path) + ".lock")
        self._lease: Lease | None = None

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def load(self) -> StateSnapshot:
        """Load the snapshot from disk."""
        snapshot = StateSnapshot.model_validate_json(self._path.read_text(encoding="utf-8"))
        logger.debug("State loaded from %s: serial=%d", self._path, snapshot.serial)
        return snapshot

    def load_or_create(self, target: str) -> StateSnapshot:
        """Load existing state or create a new, empty one."""
        if self._path.exists():
            return self.load()
        logger.debug("Created new state for target %s", target)
        return StateSnapshot(target=target)

    def acquire(self, owner: str = "deploy-orchestrator") -> Lease:
        """Take the lease on this state target or fail with ``AlreadyLockedError``."""
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = self._lock_path.open("a+", encoding="utf-8")
        try:
            locked = _try_lock(handle)
        except Exception as e:
            handle.close()
            raise StateLockError(str(e)) from e

        if not locked:
            handle.seek(0)
            holder = handle.read().strip() or None
            handle.close()
            raise AlreadyLockedError(str(self._path), holder)

        lease = Lease(self, handle, owner)
        handle.seek(0)
        handle.truncate()
        handle.write(lease.describe())
        handle.flush()
        self._lease = lease
        logger.debug("Lease acquired on %s: %s", self._path, lease.token)
        return lease

    def _forget(self, lease: Lease) -> None:
        if self._lease is lease:
            self._lease = None

    def _check_lease(self, lease: Lease) -> None:
        if self._lease is not lease or not lease.active:
            raise StateLockError(f"Lease {lease.token} does not hold {self._path}")

    def save(self, snapshot: StateSnapshot, lease: Lease) -> None:
        """Write *snapshot* atomically while holding *lease*."""
        self._check_lease(lease)
        path = self._path
        path.parent.mkdir(parents=True, exist_ok=True)

        backup_path = Path(str(path) + ".backup")
        # Avoid TOCTOU race between exists() and read_bytes().
        with contextlib.suppress(FileNotFoundError):
            backup_path.write_bytes(path.read_bytes())

        data = snapshot.model_dump(mode="json")
        content = json.dumps(data, indent=2, sort_keys=True) + "\n"

        fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        tmp_file = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            tmp_file.replace(path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                tmp_file.unlink()
        logger.debug("State saved: serial=%d path=%s", snapshot.serial, path)
