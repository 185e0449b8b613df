"""
Repository building blocks.

Every rendercache repository has the same shape: find a value by key, or
save a value under a key. Repository[K, V] is that capability;
KeyValueRepository implements it on top of a RecordStore, which holds
JSON-compatible values by string key inside a namespace.

Storage backends:
- In-memory (for testing)
- File-based (one JSON file per key, safe across processes)

find() returns None for legitimate absence. Backend failures are raised,
never reported as absence.
"""

import hashlib
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Generic, Iterator, Optional, TypeVar

from filelock import FileLock

K = TypeVar("K")
V = TypeVar("V")


class RecordStore(ABC):
    """
    Abstract base class for namespaced JSON record storage.

    Implementations must provide methods to:
    - Read a record by (namespace, key)
    - Write a record by (namespace, key), replacing any previous value
    """

    @abstractmethod
    def get(self, namespace: str, key: str) -> Optional[Any]:
        """
        Retrieve a record.

        Args:
            namespace: Table name (e.g. "jobs")
            key: Record key within the namespace

        Returns:
            The stored JSON-compatible value, or None if absent
        """
        pass

    @abstractmethod
    def put(self, namespace: str, key: str, value: Any) -> None:
        """
        Store a record, replacing any previous value.

        Args:
            namespace: Table name
            key: Record key within the namespace
            value: JSON-compatible value
        """
        pass


class InMemoryRecordStore(RecordStore):
    """
    In-memory implementation of RecordStore for testing.

    Values are round-tripped through JSON so tests see the same
    serialization behavior as the file store.
    """

    def __init__(self):
        self._records: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()

    def get(self, namespace: str, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._records.get(namespace, {}).get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def put(self, namespace: str, key: str, value: Any) -> None:
        raw = json.dumps(value)
        with self._lock:
            self._records.setdefault(namespace, {})[key] = raw

    def clear(self) -> None:
        """Clear all stored data (for testing)."""
        with self._lock:
            self._records.clear()


class FileRecordStore(RecordStore):
    """
    File-based implementation of RecordStore.

    Stores records as JSON files in a directory tree:
        store_dir/
            {namespace}/
                {sha1(key)}.json      {"key": ..., "value": ...}
                {sha1(key)}.json.lock

    Keys are hashed so arbitrary key strings map to safe file names; the
    original key is kept in the file for inspection. Writes go to a temp
    file and are moved into place while holding a per-record file lock.
    """

    LOCK_TIMEOUT = 30

    def __init__(self, store_dir: Path | str):
        self._store_dir = Path(store_dir)
        self._store_dir.mkdir(parents=True, exist_ok=True)

    @property
    def store_dir(self) -> Path:
        return self._store_dir

    def _record_path(self, namespace: str, key: str) -> Path:
        digest = hashlib.sha1(key.encode()).hexdigest()
        return self._store_dir / namespace / f"{digest}.json"

    def get(self, namespace: str, key: str) -> Optional[Any]:
        path = self._record_path(namespace, key)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if data.get("key") != key:
            raise ValueError(f"Record {path} holds key '{data.get('key')}', expected '{key}'")
        return data["value"]

    def put(self, namespace: str, key: str, value: Any) -> None:
        path = self._record_path(namespace, key)
        path.parent.mkdir(parents=True, exist_ok=True)

        with FileLock(f"{path}.lock", timeout=self.LOCK_TIMEOUT):
            temp_path = None
            try:
                with tempfile.NamedTemporaryFile(
                    mode="w",
                    dir=path.parent,
                    suffix=".tmp",
                    delete=False,
                    encoding="utf-8",
                ) as f:
                    temp_path = Path(f.name)
                    json.dump({"key": key, "value": value}, f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(temp_path, path)
            except BaseException:
                if temp_path is not None and temp_path.exists():
                    temp_path.unlink()
                raise


class Repository(ABC, Generic[K, V]):
    """Find/save capability shared by all rendercache repositories."""

    @abstractmethod
    def find(self, key: K) -> Optional[V]:
        """
        Look up a value.

        Returns:
            The value, or None if nothing was saved under key

        Raises:
            Exception: Whatever the backend raises on access failure
        """
        pass

    @abstractmethod
    def save(self, key: K, value: V) -> None:
        """Store value under key, replacing any previous value."""
        pass


class KeyValueRepository(Repository[K, V]):
    """
    Repository over one RecordStore namespace.

    Args:
        store: Backend record store
        namespace: Namespace within the store
        key_fn: Maps a domain key to the string key stored in the backend
        encode: Maps a value to a JSON-compatible value
        decode: Inverse of encode
    """

    def __init__(
        self,
        store: RecordStore,
        namespace: str,
        key_fn: Callable[[K], str],
        encode: Callable[[V], Any],
        decode: Callable[[Any], V],
    ):
        self._store = store
        self._namespace = namespace
        self._key_fn = key_fn
        self._encode = encode
        self._decode = decode

    @property
    def namespace(self) -> str:
        return self._namespace

    def find(self, key: K) -> Optional[V]:
        raw = self._store.get(self._namespace, self._key_fn(key))
        if raw is None:
            return None
        return self._decode(raw)

    def save(self, key: K, value: V) -> None:
        self._store.put(self._namespace, self._key_fn(key), self._encode(value))


class KeyedLocks:
    """
    One lock per key, created on first use.

    Serializes find-then-create sequences for the same key while letting
    different keys proceed in parallel. Locks are never discarded; the key
    space is bounded by releases and instances.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for key for the duration of the with block."""
        lock = self._lock_for(key)
        with lock:
            yield
