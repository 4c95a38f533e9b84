"""
Local Inspection Cache: device-local persistence of inspection results.

One JSON blob under a stable key holds every item's instance fields
(ok/ng/issue/images, keyed by item id) plus the report-level fields
(title, project metadata, products, date, signatures).

Storage is a synchronous, bounded key-value string store:

    MemoryStorage: in-process dict (tests, embedded use)
    FileStorage: one file per key under a directory, atomic replace

Neither ``load`` nor ``save`` raise: a corrupt blob loads as empty, a full
store is reported through ``on_error`` and ``save`` returns False.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable, Iterable
from urllib.parse import quote, unquote

from commissioning.core.exceptions import StorageQuotaError
from commissioning.editor.types import CacheSnapshot, InspectionFields

logger = logging.getLogger(__name__)

STORAGE_KEY = "lge-sac-commissioning-report"
STORAGE_WARNING_THRESHOLD = 5 * 1024 * 1024
QUOTA_EXCEEDED_MESSAGE = "Storage is full. Some images may not be saved. Please remove some images."

# Strings are counted as UTF-16, two bytes per character
BYTES_PER_CHAR = 2


def _footprint(key: str, value: str | None) -> int:
    if value is None:
        return 0
    return (len(key) + len(value)) * BYTES_PER_CHAR


# ── Storage backends ──────────────────────────────────────────────────────────


class KeyValueStorage:
    """Synchronous string key-value store with an optional byte quota.

    Subclasses implement ``_read``, ``_write``, ``_delete`` and ``keys``;
    quota enforcement is shared.
    """

    def __init__(self, quota_bytes: int | None = None):
        self.quota_bytes = quota_bytes

    def keys(self) -> list[str]:
        raise NotImplementedError

    def _read(self, key: str) -> str | None:
        raise NotImplementedError

    def _write(self, key: str, value: str) -> None:
        raise NotImplementedError

    def _delete(self, key: str) -> None:
        raise NotImplementedError

    def get(self, key: str) -> str | None:
        return self._read(key)

    def set(self, key: str, value: str) -> None:
        """Store *value* under *key*.

        Raises:
            StorageQuotaError: the write would push the store over its quota.
        """
        if self.quota_bytes is not None:
            required = estimate_size(self) - _footprint(key, self._read(key)) + _footprint(key, value)
            if required > self.quota_bytes:
                raise StorageQuotaError(required=required, quota=self.quota_bytes)
        self._write(key, value)

    def remove(self, key: str) -> None:
        self._delete(key)


class MemoryStorage(KeyValueStorage):
    def __init__(self, quota_bytes: int | None = None):
        super().__init__(quota_bytes)
        self._data: dict[str, str] = {}

    def keys(self) -> list[str]:
        return list(self._data)

    def _read(self, key):
        return self._data.get(key)

    def _write(self, key, value):
        self._data[key] = value

    def _delete(self, key):
        self._data.pop(key, None)


class FileStorage(KeyValueStorage):
    """One UTF-8 file per key. Writes go to a temp file and are renamed into place."""

    SUFFIX = ".json"

    def __init__(self, directory: str, quota_bytes: int | None = None):
        super().__init__(quota_bytes)
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, quote(key, safe="") + self.SUFFIX)

    def keys(self) -> list[str]:
        return [
            unquote(name[: -len(self.SUFFIX)])
            for name in sorted(os.listdir(self.directory))
            if name.endswith(self.SUFFIX)
        ]

    def _read(self, key):
        try:
            with open(self._path(key), encoding="utf-8") as fh:
                return fh.read()
        except FileNotFoundError:
            return None

    def _write(self, key, value):
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".tmp-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
            os.replace(tmp_path, self._path(key))
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _delete(self, key):
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass


def estimate_size(storage: KeyValueStorage) -> int:
    """Approximate footprint of everything in *storage*, in bytes."""
    return sum(_footprint(key, storage.get(key)) for key in storage.keys())


# ── Inspection cache ──────────────────────────────────────────────────────────


def _parse_snapshot(raw: str) -> CacheSnapshot:
    """Decode a stored blob. Raises ValueError on a wrong shape."""
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("cache blob is not an object")
    items = data.get("items") or {}
    report = data.get("report") or {}
    if not isinstance(items, dict) or not isinstance(report, dict):
        raise ValueError("cache blob has malformed items or report")

    snapshot = CacheSnapshot(report=report)
    for item_id, fields in items.items():
        if not isinstance(fields, dict):
            logger.warning("Skipping malformed cache entry for item %s", item_id, extra={"item_id": item_id})
            continue
        snapshot.items[str(item_id)] = InspectionFields.from_dict(fields)
    return snapshot


class InspectionCache:
    """Reads and writes the device-local inspection blob.

    Args:
        storage:           Backing KeyValueStorage.
        key:               Storage key for the blob.
        warning_threshold: Footprint in bytes above which saves warn.
        on_warning:        Called with a message when the threshold is crossed.
        on_error:          Called with a message when a write fails.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        key: str = STORAGE_KEY,
        warning_threshold: int = STORAGE_WARNING_THRESHOLD,
        on_warning: Callable[[str], None] | None = None,
        on_error: Callable[[str], None] | None = None,
    ):
        self.storage = storage
        self.key = key
        self.warning_threshold = warning_threshold
        self.on_warning = on_warning
        self.on_error = on_error

    def load(self) -> CacheSnapshot:
        """Return the stored snapshot; missing or unreadable data loads as empty."""
        try:
            raw = self.storage.get(self.key)
        except OSError as exc:
            logger.error("Failed to read local cache: %s", exc)
            return CacheSnapshot()
        if not raw:
            return CacheSnapshot()
        try:
            return _parse_snapshot(raw)
        except ValueError as exc:
            logger.error("Discarding unreadable local cache: %s", exc)
            return CacheSnapshot()

    def save(self, snapshot: CacheSnapshot) -> bool:
        """Overwrite the blob with *snapshot*. Returns False if the write failed."""
        serialized = json.dumps(snapshot.to_dict())
        try:
            projected = (
                estimate_size(self.storage)
                - _footprint(self.key, self.storage.get(self.key))
                + _footprint(self.key, serialized)
            )
            if projected > self.warning_threshold:
                message = f"Local storage usage is high: {round(projected / 1024)}KB"
                logger.warning(message)
                if self.on_warning:
                    self.on_warning(message)
            self.storage.set(self.key, serialized)
        except StorageQuotaError as exc:
            logger.error("Local storage quota exceeded: %s", exc)
            if self.on_error:
                self.on_error(QUOTA_EXCEEDED_MESSAGE)
            return False
        except OSError as exc:
            logger.error("Failed to save local cache: %s", exc)
            if self.on_error:
                self.on_error(f"Failed to save local data: {exc}")
            return False
        return True

    def reset(self) -> None:
        """Remove the blob entirely (full local-data reset)."""
        self.storage.remove(self.key)
        logger.info("Local inspection cache reset")

    def cleanup(self, keys_to_keep: Iterable[str]) -> list[str]:
        """Remove every storage key not in *keys_to_keep*. Returns removed keys."""
        keep = set(keys_to_keep)
        removed = []
        for key in self.storage.keys():
            if key in keep:
                continue
            try:
                self.storage.remove(key)
            except OSError as exc:
                logger.error("Failed to remove %s from local storage: %s", key, exc)
                continue
            removed.append(key)
        return removed
