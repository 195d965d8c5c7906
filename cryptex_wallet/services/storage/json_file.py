"""
JSON File Storage Implementation

DESIGN DECISION: A single JSON object on disk, {key: value}, is the closest
durable equivalent of the browser's localStorage:
1. Every engine process pointing at the same path sees the same wallet
2. The file stays human-readable for support and debugging
3. No database setup required

TRADEOFFS:
- The whole file is rewritten on every set (fine for one user's wallet)
- No locking; concurrent writers are last-writer-wins, and the ledger's
  version token is what detects a lost append

Writes go to a temp file in the same directory and are moved into place with
os.replace, so a crash never leaves a half-written store behind.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Mapping, Optional

import structlog
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cryptex_wallet.services.storage.interface import (
    CorruptDataError,
    KeyValueStore,
    StorageError,
)


logger = structlog.get_logger(__name__)


class JsonFileStore(KeyValueStore):
    """
    File-backed store.

    The file is re-read on every get so that writes from other processes
    are picked up.
    """

    def __init__(self, path: str | Path, write_attempts: int = 3):
        self._path = Path(path)
        self._retrying = Retrying(
            stop=stop_after_attempt(write_attempts),
            wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
            retry=retry_if_exception_type(OSError),
            reraise=True,
        )

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, str]:
        """Load the whole store. A missing file is an empty store."""
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise StorageError(f"Failed to read store {self._path}: {e}")

        if not raw.strip():
            return {}

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptDataError(f"Store file {self._path} is not valid JSON: {e}")

        if not isinstance(data, dict):
            raise CorruptDataError(f"Store file {self._path} does not hold an object")

        return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}

    def _write_all(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2, sort_keys=True)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

    def _commit(self, data: dict[str, str]) -> None:
        try:
            self._retrying(self._write_all, data)
        except OSError as e:
            logger.error("store_write_failed", path=str(self._path), error=str(e))
            raise StorageError(f"Failed to write store {self._path}: {e}")

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def set_many(self, values: Mapping[str, str]) -> None:
        data = self._read_all()
        data.update(values)
        self._commit(data)

    def delete(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._commit(data)
