"""Content-hash keyed metadata cache and the per-instance installed-hash index."""

import base64
from datetime import datetime

import structlog

from ..models import CacheEntry
from .storage import KeyValueStore, Record

log = structlog.stdlib.get_logger()

CACHE_PARTITION = "content_cache"
INSTALLED_PARTITION = "installed_hashes"


def _normalize(content_hash: str) -> str:
    return content_hash.strip().lower()


class ContentCache:
    """Metadata blobs keyed by SHA-1 content hash.

    Writes are first-write-wins: putting an equal blob again is a no-op
    that leaves both timestamps untouched, and putting a different blob
    for a hash already present is rejected.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @staticmethod
    def _to_record(entry: CacheEntry) -> Record:
        return {
            "blob": base64.b64encode(entry.blob).decode("ascii"),
            "created_at": entry.created_at.isoformat(),
            "updated_at": entry.updated_at.isoformat(),
        }

    @staticmethod
    def _from_record(content_hash: str, record: Record) -> CacheEntry:
        return CacheEntry(
            content_hash=content_hash,
            blob=base64.b64decode(record["blob"]),
            created_at=datetime.fromisoformat(record["created_at"]),
            updated_at=datetime.fromisoformat(record["updated_at"]),
        )

    def get_entry(self, content_hash: str) -> CacheEntry | None:
        key = _normalize(content_hash)
        record = self._store.get(CACHE_PARTITION, key)
        return self._from_record(key, record) if record is not None else None

    def get(self, content_hash: str) -> bytes | None:
        entry = self.get_entry(content_hash)
        return entry.blob if entry is not None else None

    def has(self, content_hash: str) -> bool:
        return self._store.get(CACHE_PARTITION, _normalize(content_hash)) is not None

    def put(self, content_hash: str, blob: bytes) -> bool:
        """Store a blob; returns False if a different blob already owns the hash."""
        return self.put_many({content_hash: blob})[_normalize(content_hash)]

    def delete(self, content_hash: str) -> bool:
        return self._store.delete(CACHE_PARTITION, _normalize(content_hash))

    def get_many(self, content_hashes: list[str]) -> dict[str, bytes]:
        keys = [_normalize(h) for h in content_hashes]
        records = self._store.get_many(CACHE_PARTITION, keys)
        return {key: self._from_record(key, record).blob for key, record in records.items()}

    def has_many(self, content_hashes: list[str]) -> dict[str, bool]:
        keys = [_normalize(h) for h in content_hashes]
        present = self._store.get_many(CACHE_PARTITION, keys)
        return {key: key in present for key in keys}

    def put_many(self, blobs: dict[str, bytes]) -> dict[str, bool]:
        """Store several blobs; the result maps each hash to whether it was accepted."""
        items = {_normalize(h): blob for h, blob in blobs.items()}
        now = datetime.now()
        stored = self._store.setdefault_many(
            CACHE_PARTITION,
            {key: self._to_record(CacheEntry(key, blob, now, now)) for key, blob in items.items()},
        )

        accepted: dict[str, bool] = {}
        for key, blob in items.items():
            accepted[key] = base64.b64decode(stored[key]["blob"]) == blob
            if not accepted[key]:
                log.warning("Rejected conflicting cache write", content_hash=key)
        return accepted

    def delete_many(self, content_hashes: list[str]) -> int:
        return self._store.delete_many(CACHE_PARTITION, [_normalize(h) for h in content_hashes])


class InstalledHashIndex:
    """Authoritative set of content hashes installed per instance."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def hashes(self, instance_id: str) -> set[str]:
        record = self._store.get(INSTALLED_PARTITION, instance_id)
        return set(record["hashes"]) if record else set()

    def contains(self, instance_id: str, content_hash: str) -> bool:
        return _normalize(content_hash) in self.hashes(instance_id)

    def add(self, instance_id: str, content_hashes: list[str]) -> None:
        current = self.hashes(instance_id)
        current.update(_normalize(h) for h in content_hashes)
        self._store.put(INSTALLED_PARTITION, instance_id, {"hashes": sorted(current)})

    def remove(self, instance_id: str, content_hashes: list[str]) -> None:
        current = self.hashes(instance_id)
        current.difference_update(_normalize(h) for h in content_hashes)
        self._store.put(INSTALLED_PARTITION, instance_id, {"hashes": sorted(current)})

    def clear(self, instance_id: str) -> None:
        self._store.delete(INSTALLED_PARTITION, instance_id)
