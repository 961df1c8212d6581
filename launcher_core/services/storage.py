"""Partitioned key/value storage used for instance records and cache blobs."""

import json
import threading
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote

import structlog

log = structlog.stdlib.get_logger()

Record = dict[str, Any]


class KeyValueStore(Protocol):
    """Keyed storage of JSON-compatible records grouped by partition."""

    def get(self, partition: str, key: str) -> Record | None: ...

    def put(self, partition: str, key: str, value: Record) -> None: ...

    def delete(self, partition: str, key: str) -> bool: ...

    def get_many(self, partition: str, keys: list[str]) -> dict[str, Record]: ...

    def put_many(self, partition: str, items: dict[str, Record]) -> None: ...

    def setdefault_many(self, partition: str, items: dict[str, Record]) -> dict[str, Record]: ...

    def delete_many(self, partition: str, keys: list[str]) -> int: ...

    def all(self, partition: str) -> dict[str, Record]: ...


def _insert_absent(records: dict[str, Record], items: dict[str, Record]) -> tuple[dict[str, Record], bool]:
    stored: dict[str, Record] = {}
    inserted = False
    for key, value in items.items():
        if key not in records:
            records[key] = dict(value)
            inserted = True
        stored[key] = dict(records[key])
    return stored, inserted


class InMemoryStore:
    """Process-local store; the default for tests and ephemeral runs."""

    def __init__(self) -> None:
        self._partitions: dict[str, dict[str, Record]] = {}
        self._lock = threading.Lock()

    def get(self, partition: str, key: str) -> Record | None:
        with self._lock:
            value = self._partitions.get(partition, {}).get(key)
            return dict(value) if value is not None else None

    def put(self, partition: str, key: str, value: Record) -> None:
        self.put_many(partition, {key: value})

    def delete(self, partition: str, key: str) -> bool:
        return self.delete_many(partition, [key]) == 1

    def get_many(self, partition: str, keys: list[str]) -> dict[str, Record]:
        with self._lock:
            records = self._partitions.get(partition, {})
            return {key: dict(records[key]) for key in keys if key in records}

    def put_many(self, partition: str, items: dict[str, Record]) -> None:
        with self._lock:
            records = self._partitions.setdefault(partition, {})
            for key, value in items.items():
                records[key] = dict(value)

    def setdefault_many(self, partition: str, items: dict[str, Record]) -> dict[str, Record]:
        """Insert only the keys not yet present, in one locked step.

        Returns the record each key holds afterwards: the existing one, or
        the value just inserted.
        """
        with self._lock:
            stored, _ = _insert_absent(self._partitions.setdefault(partition, {}), items)
            return stored

    def delete_many(self, partition: str, keys: list[str]) -> int:
        with self._lock:
            records = self._partitions.get(partition, {})
            removed = 0
            for key in keys:
                if records.pop(key, None) is not None:
                    removed += 1
            return removed

    def all(self, partition: str) -> dict[str, Record]:
        with self._lock:
            return {key: dict(value) for key, value in self._partitions.get(partition, {}).items()}


class JsonFileStore(InMemoryStore):
    """Store persisted as one JSON document per partition.

    Every mutation rewrites the partition file through a temporary file
    and an atomic replace, so a crash never leaves a truncated document.
    """

    def __init__(self, directory: Path) -> None:
        super().__init__()
        self.directory = directory
        self.directory.mkdir(parents=True, exist_ok=True)
        log.info("JSON file store initialized", directory=str(directory))

    def _path(self, partition: str) -> Path:
        return self.directory / f"{quote(partition, safe='')}.json"

    def _load(self, partition: str) -> dict[str, Record]:
        # Caller holds the lock
        if partition in self._partitions:
            return self._partitions[partition]

        path = self._path(partition)
        records: dict[str, Record] = {}
        if path.exists():
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    records = data
                else:
                    log.warning("Ignoring non-object partition file", path=str(path))
            except json.JSONDecodeError as e:
                log.error("Corrupt partition file, starting empty", path=str(path), error=str(e))
        self._partitions[partition] = records
        return records

    def _flush(self, partition: str) -> None:
        path = self._path(partition)
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(self._partitions.get(partition, {}), f, indent=2, ensure_ascii=False, sort_keys=True)
            temp_path.replace(path)
        except OSError as e:
            log.error("Failed to persist partition", path=str(path), error=str(e))
            temp_path.unlink(missing_ok=True)
            raise

    def get(self, partition: str, key: str) -> Record | None:
        with self._lock:
            self._load(partition)
        return super().get(partition, key)

    def get_many(self, partition: str, keys: list[str]) -> dict[str, Record]:
        with self._lock:
            self._load(partition)
        return super().get_many(partition, keys)

    def put_many(self, partition: str, items: dict[str, Record]) -> None:
        with self._lock:
            records = self._load(partition)
            for key, value in items.items():
                records[key] = dict(value)
            self._flush(partition)

    def setdefault_many(self, partition: str, items: dict[str, Record]) -> dict[str, Record]:
        with self._lock:
            stored, inserted = _insert_absent(self._load(partition), items)
            if inserted:
                self._flush(partition)
            return stored

    def delete_many(self, partition: str, keys: list[str]) -> int:
        with self._lock:
            records = self._load(partition)
            removed = 0
            for key in keys:
                if records.pop(key, None) is not None:
                    removed += 1
            if removed:
                self._flush(partition)
            return removed

    def all(self, partition: str) -> dict[str, Record]:
        with self._lock:
            self._load(partition)
        return super().all(partition)
