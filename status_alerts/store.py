# Snapshot stores: where the poll loop checks its ObservedState back in.

# JsonFileStore writes to a temporary file in the target directory and then
# os.replace()s it over the old one, so a reader (or a crash) only ever sees
# the previous document or the new one, never a partial write.

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from status_alerts.exceptions import StoreError
from status_alerts.models import ObservedState

log = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    def load(self) -> ObservedState: ...

    def save(self, state: ObservedState) -> None: ...


class MemoryStore:
    """Volatile store; state is lost when the process exits."""

    def __init__(self, initial: ObservedState | None = None) -> None:
        self._state = initial or ObservedState.empty()

    def load(self) -> ObservedState:
        return self._state

    def save(self, state: ObservedState) -> None:
        self._state = state


class JsonFileStore:

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def load(self) -> ObservedState:
        """Return the persisted state, or an empty one if nothing was saved yet."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            log.info("No saved state at %s, starting from an empty snapshot", self.path)
            return ObservedState.empty()
        except OSError as exc:
            raise StoreError(f"cannot read {self.path}: {exc}") from exc

        try:
            return ObservedState.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise StoreError(f"{self.path} does not contain a valid snapshot: {exc}") from exc

    def save(self, state: ObservedState) -> None:
        document = json.dumps(state.to_dict(), indent=2, sort_keys=True)
        directory = self.path.parent
        tmp_name: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=directory,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(document)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            raise StoreError(f"cannot write {self.path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    log.debug("Could not remove temp file %s", tmp_name)
