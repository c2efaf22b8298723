"""Durable Job Handle Store.

Persists the id of the in-flight job per resource so a restarted client can
pick up where it left off. Handles live in a single JSON document written
atomically under an exclusive file lock.
"""

import contextlib
import fcntl
import json
import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from .models import JobHandle

logger = logging.getLogger(__name__)

STORE_VERSION = "1.0"


class HandleStoreError(Exception):
    """Raised when the handle store cannot be written."""

    pass


class HandleStoreLockTimeoutError(HandleStoreError):
    """Raised when the store lock cannot be acquired in time."""

    pass


class JobHandleStore:
    """File-backed key/value store of job handles, keyed by resource id.

    At most one handle exists per resource; ``save`` overwrites. Missing keys
    never raise, and an unreadable store file is treated as empty. Calls block
    while waiting for the file lock, so async callers run them in a thread.
    """

    def __init__(
        self,
        path: Path,
        namespace: str = "job",
        lock_timeout_seconds: float = 5.0,
    ):
        """Initialize the store.

        Args:
            path: JSON file holding the handles
            namespace: Key prefix separating call sites (e.g. "scraping_job")
            lock_timeout_seconds: File lock timeout in seconds
        """
        self.path = Path(path)
        self.namespace = namespace
        self.lock_timeout_seconds = lock_timeout_seconds
        self._lock_path = self.path.with_name(self.path.name + ".lock")

    def _key(self, resource_id: str) -> str:
        return f"{self.namespace}_{resource_id}"

    def save(self, resource_id: str, job_id: str) -> JobHandle:
        """Persist the job id for a resource, replacing any previous handle.

        Raises:
            HandleStoreError: If the store cannot be written
        """
        handle = JobHandle(resource_id=str(resource_id), job_id=str(job_id))
        with self._locked():
            handles = self._read()
            handles[self._key(resource_id)] = {
                "resource_id": handle.resource_id,
                "job_id": handle.job_id,
                "created_at": handle.created_at.isoformat(),
            }
            self._atomic_write(handles)
        logger.debug(f"Saved job handle {job_id} for {self._key(resource_id)}")
        return handle

    def load(self, resource_id: str) -> Optional[str]:
        """Return the persisted job id for a resource, or None."""
        handle = self.load_handle(resource_id)
        return handle.job_id if handle else None

    def load_handle(self, resource_id: str) -> Optional[JobHandle]:
        """Return the persisted handle for a resource, or None."""
        entry = self._read().get(self._key(resource_id))
        if not isinstance(entry, dict) or not entry.get("job_id"):
            return None

        created_at = datetime.now(timezone.utc)
        raw_created = entry.get("created_at")
        if isinstance(raw_created, str):
            try:
                created_at = datetime.fromisoformat(raw_created)
            except ValueError:
                logger.debug(f"Ignoring malformed created_at {raw_created!r}")

        return JobHandle(
            resource_id=str(resource_id),
            job_id=str(entry["job_id"]),
            created_at=created_at,
        )

    def clear(self, resource_id: str, job_id: Optional[str] = None) -> None:
        """Delete the handle for a resource. Missing handles are ignored.

        When job_id is given, a handle that now points at a different job is
        left in place.

        Raises:
            HandleStoreError: If the store cannot be written
        """
        if not self.path.exists():
            return
        key = self._key(resource_id)
        with self._locked():
            handles = self._read()
            entry = handles.get(key)
            if entry is None:
                return
            stored_job = entry.get("job_id") if isinstance(entry, dict) else None
            if job_id is not None and stored_job != str(job_id):
                logger.debug(f"Keeping handle {key}: it belongs to job {stored_job}")
                return
            del handles[key]
            self._atomic_write(handles)
        logger.debug(f"Cleared job handle for {key}")

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Job handle store {self.path} is unreadable, ignoring it: {e}")
            return {}

        handles = data.get("handles") if isinstance(data, dict) else None
        if not isinstance(handles, dict):
            logger.warning(f"Job handle store {self.path} has unexpected format")
            return {}
        return handles

    def _atomic_write(self, handles: Dict[str, Any]) -> None:
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            with open(temp_path, "w") as f:
                json.dump({"version": STORE_VERSION, "handles": handles}, f, indent=2)
            temp_path.chmod(0o600)
            os.replace(temp_path, self.path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise HandleStoreError(f"Atomic write of {self.path} failed: {e}")

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold an exclusive lock on the store for a read-modify-write cycle."""
        try:
            self._lock_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            lock_file = open(self._lock_path, "a")
        except OSError as e:
            raise HandleStoreError(f"Cannot open lock file {self._lock_path}: {e}")

        with lock_file:
            start_time = time.time()
            while True:
                try:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.time() - start_time >= self.lock_timeout_seconds:
                        raise HandleStoreLockTimeoutError(
                            f"Failed to acquire lock on {self.path} within "
                            f"{self.lock_timeout_seconds} seconds"
                        )
                    time.sleep(0.05)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
