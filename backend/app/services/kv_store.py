"""
Durable key/value backends.

Each backend maps a string key to an opaque byte payload, the way a
browser's localStorage maps keys to strings. Backends only classify their
failures; deciding what a failure means for the user is left to callers.
"""
import errno
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import quote

from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import Settings, settings as default_settings
from app.db.models import Base, StorageEntry
from app.db.session import build_engine, build_session_factory

logger = logging.getLogger(__name__)

_FULL_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


class StorageError(Exception):
    """Base class for durable storage failures."""


class StorageQuotaExceededError(StorageError):
    """Raised when a write would exceed the store's capacity."""


class StorageUnavailableError(StorageError):
    """Raised when the store cannot be read or written at all."""


class KeyValueStore(ABC):
    """Byte-oriented key/value store with an optional size quota."""

    def __init__(self, quota_bytes: int | None = None) -> None:
        self.quota_bytes = quota_bytes or None

    @abstractmethod
    def get(self, key: str) -> bytes | None:
        """Return the payload stored under *key*, or None when absent."""
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError

    def _check_quota(self, key: str, value: bytes) -> None:
        if self.quota_bytes is not None and len(value) > self.quota_bytes:
            raise StorageQuotaExceededError(
                f"Writing {len(value)} bytes under {key!r} exceeds the "
                f"{self.quota_bytes} byte quota"
            )


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store. Nothing survives a restart."""

    def __init__(self, quota_bytes: int | None = None) -> None:
        super().__init__(quota_bytes)
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._check_quota(key, value)
        self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileKeyValueStore(KeyValueStore):
    """
    One file per key under *directory*.

    Writes land in a temporary file first and are moved into place with
    os.replace, so a crash mid-write never leaves a truncated payload.
    """

    def __init__(self, directory: str | Path, quota_bytes: int | None = None) -> None:
        super().__init__(quota_bytes)
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageUnavailableError(f"Could not read {path}: {exc}") from exc

    def set(self, key: str, value: bytes) -> None:
        self._check_quota(key, value)
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            if exc.errno in _FULL_ERRNOS:
                raise StorageQuotaExceededError(f"No space left writing {path}") from exc
            raise StorageUnavailableError(f"Could not write {path}: {exc}") from exc
        logger.debug("Wrote %d bytes to %s", len(value), path)

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageUnavailableError(f"Could not delete {path}: {exc}") from exc


class SqlKeyValueStore(KeyValueStore):
    """Key/value pairs kept in the storage_entries table."""

    def __init__(self, engine: Engine, quota_bytes: int | None = None) -> None:
        super().__init__(quota_bytes)
        self.engine = engine
        self._session_factory = build_session_factory(engine)
        try:
            Base.metadata.create_all(engine)
        except SQLAlchemyError as exc:
            # Reads and writes will report the outage themselves.
            logger.error("Could not create storage tables: %s", exc)

    def get(self, key: str) -> bytes | None:
        try:
            with self._session_factory() as db:
                return db.execute(
                    select(StorageEntry.value).where(StorageEntry.key == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"Could not read {key!r}: {exc}") from exc

    def set(self, key: str, value: bytes) -> None:
        self._check_quota(key, value)
        try:
            with self._session_factory() as db:
                entry = db.get(StorageEntry, key)
                if entry is None:
                    db.add(StorageEntry(key=key, value=value))
                else:
                    entry.value = value
                db.commit()
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"Could not write {key!r}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            with self._session_factory() as db:
                entry = db.get(StorageEntry, key)
                if entry is not None:
                    db.delete(entry)
                    db.commit()
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"Could not delete {key!r}: {exc}") from exc


def build_key_value_store(config: Settings | None = None) -> KeyValueStore:
    """Instantiate the backend named by config.STORAGE_BACKEND."""
    config = config or default_settings
    quota = config.STORAGE_QUOTA_BYTES or None
    if config.STORAGE_BACKEND == "memory":
        return MemoryKeyValueStore(quota_bytes=quota)
    if config.STORAGE_BACKEND == "sql":
        return SqlKeyValueStore(build_engine(config.DATABASE_URL), quota_bytes=quota)
    return FileKeyValueStore(config.STORAGE_DIR, quota_bytes=quota)
