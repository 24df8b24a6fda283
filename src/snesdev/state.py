"""
State persistence for bootstrap runs.

This module keeps the resume bookkeeping of a run, supporting:
- Resume mode: completed steps are recorded after each success
- Atomic updates: temporary file + rename so a crash never leaves half a record
- Tolerant loading: corrupted or foreign records read as "no prior progress"
- Run locking: an exclusive advisory lock next to the record keeps two runs
  from driving the same install target at once

Records are JSON files at
``<install_prefix>/.bootstrap-state/<project>-<digest>.json``. A single
``<install_prefix>/.bootstrap-state.json`` left by the first releases is
still read (and cleared) when a project has no record of its own.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import logging
import os
import re
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Generator, Optional

from pydantic import ValidationError

from snesdev.config import get_config
from snesdev.errors import RunInProgressError
from snesdev.models import RunState, utc_now_iso

__all__ = ["RunKey", "StateRepository", "run_lock"]

logger = logging.getLogger(__name__)


# Cross-platform non-blocking file locking
if sys.platform == "win32":
    import msvcrt

    def _try_lock(f: IO) -> bool:
        """Try to lock file on Windows."""
        try:
            msvcrt.locking(f.fileno(), msvcrt.LK_NBLCK, 1)
        except OSError:
            return False
        return True

    def _unlock(f: IO) -> None:
        """Unlock file on Windows."""
        msvcrt.locking(f.fileno(), msvcrt.LK_UNLCK, 1)
else:
    import fcntl

    def _try_lock(f: IO) -> bool:
        """Try to lock file on Unix."""
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        return True

    def _unlock(f: IO) -> None:
        """Unlock file on Unix."""
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)


@contextlib.contextmanager
def run_lock(path: Path) -> Generator[IO, None, None]:
    """
    Hold an exclusive lock on ``<path>.lock`` for the duration of the block.

    Fails fast instead of waiting: a second holder gets RunInProgressError.

    Example:
        with run_lock(state_file):
            ...  # drive the run
    """
    lock_path = path.with_suffix(path.suffix + ".lock")
    lock_path.parent.mkdir(parents=True, exist_ok=True)

    lock_file = open(lock_path, "a+")
    try:
        if not _try_lock(lock_file):
            raise RunInProgressError(lock_path)
        try:
            yield lock_file
        finally:
            try:
                _unlock(lock_file)
            except OSError as e:
                logger.debug("Ignoring unlock error on %s: %s", lock_path, e)
    finally:
        lock_file.close()


_SLUG_RE = re.compile(r"[^A-Za-z0-9._-]+")

# Single per-prefix record written by the first bootstrap releases
LEGACY_STATE_FILE = ".bootstrap-state.json"


@dataclass(frozen=True)
class RunKey:
    """Identifies the run record of one (install prefix, project) target."""
    install_prefix: Path
    project_name: str

    @property
    def digest(self) -> str:
        raw = f"{Path(self.install_prefix).expanduser().resolve()}\0{self.project_name}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    @property
    def slug(self) -> str:
        name = _SLUG_RE.sub("-", self.project_name).strip("-") or "project"
        return f"{name}-{self.digest[:12]}"


class StateRepository:
    """
    Load, save and clear RunState records.

    The repository is the only component that touches the backing files.
    Saving is last-writer-wins; callers serialize whole runs with
    :meth:`lock`.
    """

    def __init__(self, state_dir: Optional[Path] = None):
        """
        Args:
            state_dir: Directory holding all records. Defaults to
                ``<install_prefix>/<state_dir_name>`` of each key.
        """
        self.state_dir = Path(state_dir) if state_dir is not None else None

    def path_for(self, key: RunKey) -> Path:
        base = self.state_dir
        if base is None:
            base = Path(key.install_prefix) / get_config().state_dir_name
        return base / f"{key.slug}.json"

    def legacy_path_for(self, key: RunKey) -> Path:
        return Path(key.install_prefix) / LEGACY_STATE_FILE

    def load(self, key: RunKey) -> Optional[RunState]:
        """
        Load the record for a key.

        Falls back to the legacy per-prefix record when the key has none
        and the legacy record belongs to the same project.

        Returns:
            The RunState, or None if there is no usable record.
        """
        path = self.path_for(key)
        if path.exists():
            return self._read(path)

        legacy_path = self.legacy_path_for(key)
        if not legacy_path.exists():
            return None
        state = self._read(legacy_path)
        if state is None:
            return None
        if state.project_name and state.project_name != key.project_name:
            logger.debug(
                "Ignoring legacy state file %s recorded for project %s",
                legacy_path,
                state.project_name,
            )
            return None
        logger.info("Using legacy state file %s", legacy_path)
        return state

    def _read(self, path: Path) -> Optional[RunState]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", path, e)
            return None

        if not isinstance(data, dict):
            logger.warning(
                "Ignoring state file %s: expected an object, got %s",
                path,
                type(data).__name__,
            )
            return None

        try:
            return RunState.model_validate(data)
        except ValidationError as e:
            logger.warning("Ignoring invalid state file %s: %s", path, e)
            return None

    def save(self, key: RunKey, state: RunState) -> RunState:
        """
        Save a record atomically.

        Uses temporary file + rename and sets permissions to 600.

        Returns:
            The state as written, with ``last_updated`` stamped.
        """
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        state = state.model_copy(update={"last_updated": utc_now_iso()})

        fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=".run-state-",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state.to_record(), f, indent=2)
                f.write("\n")
            os.chmod(temp_path, 0o600)
            os.replace(temp_path, path)
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

        logger.debug("Saved run state to %s", path)
        return state

    def clear(self, key: RunKey) -> None:
        """Remove the key's record and a legacy record of the same project."""
        paths = [self.path_for(key)]
        legacy_path = self.legacy_path_for(key)
        if legacy_path.exists():
            legacy = self._read(legacy_path)
            if legacy is None or legacy.project_name in ("", key.project_name):
                paths.append(legacy_path)

        for path in paths:
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            logger.debug("Cleared run state %s", path)

    def lock(self, key: RunKey):
        """Exclusive run lock colocated with the key's record."""
        return run_lock(self.path_for(key))
