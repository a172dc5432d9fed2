# src/cache/persistence.py — v1
"""Crash-safe JSON persistence for the record store.

File layout: a single UTF-8 JSON object mapping fingerprint → record
document. Next to it live ``<file>.backup`` (copy of the previous primary,
rotated on every flush) and, only while a write is in progress,
``<file>.tmp``. A leftover temp file at startup is an interrupted write
and is discarded.

Write sequence: backup (best effort) → write temp → os.replace onto the
primary. A crash at any point leaves either the old or the new primary,
never a half-written one.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from answercache.cache.errors import PersistenceError
from answercache.cache.fingerprint import fingerprint, is_fingerprint
from answercache.cache.models import CacheRecord
from answercache.cache.store import CacheStore

logger = logging.getLogger(__name__)


class PersistenceManager:
    """Load and flush a CacheStore to a JSON file."""

    def __init__(self, store: CacheStore, path: Path | str) -> None:
        self._store = store
        self.path = Path(path).expanduser()
        self._flush_lock = threading.Lock()

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(self.path.name + ".backup")

    @property
    def temp_path(self) -> Path:
        return self.path.with_name(self.path.name + ".tmp")

    @property
    def corrupt_path(self) -> Path:
        return self.path.with_name(self.path.name + ".corrupt")

    # --- Load ---

    def load(self) -> int:
        """Hydrate the store from disk.

        Never raises for a missing or corrupt file: the store starts empty
        (or from the backup) and a fresh primary is written.

        Returns:
            Number of records loaded.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create cache directory %s: %s", self.path.parent, e)
            self._store.replace_all([])
            return 0

        self._discard_temp()

        if not self.path.exists():
            logger.info("Cache file not found, creating new cache at %s", self.path)
            self._store.replace_all([])
            self._write_empty()
            return 0

        try:
            documents = self._read(self.path)
        except PersistenceError as e:
            logger.error("Failed to read cache file: %s", e)
            documents = self._recover()

        records, migrated = self._parse(documents)
        count = self._store.replace_all(records, dirty=migrated)
        logger.info("Cache initialized with %d entries", count)
        return count

    def _read(self, path: Path) -> dict[str, Any]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PersistenceError(path, "load", e) from e
        if not isinstance(data, dict):
            raise PersistenceError(
                path, "load", ValueError(f"expected JSON object, got {type(data).__name__}")
            )
        return data

    def _recover(self) -> dict[str, Any]:
        """Quarantine a corrupt primary, then fall back to the backup."""
        try:
            os.replace(self.path, self.corrupt_path)
            logger.warning("Corrupt cache file moved to %s", self.corrupt_path)
        except OSError as e:
            logger.warning("Could not quarantine corrupt cache file: %s", e)

        if self.backup_path.exists():
            try:
                documents = self._read(self.backup_path)
            except PersistenceError as e:
                logger.error("Backup is unreadable too: %s", e)
            else:
                try:
                    shutil.copy2(self.backup_path, self.path)
                except OSError as e:
                    logger.warning("Could not restore primary from backup: %s", e)
                logger.warning(
                    "Restored %d entries from %s", len(documents), self.backup_path,
                )
                return documents

        logger.info("Cache initialized with empty cache due to errors")
        self._write_empty()
        return {}

    def _parse(self, documents: dict[str, Any]) -> tuple[list[CacheRecord], bool]:
        """Validate documents; re-key entries whose key is not a current fingerprint.

        Returns:
            (records, migrated) where migrated means the file needs rewriting.
        """
        by_key: dict[str, CacheRecord] = {}
        skipped = rekeyed = 0
        for key, document in documents.items():
            try:
                record = CacheRecord.model_validate(document)
            except ValidationError as e:
                skipped += 1
                logger.warning("Skipping invalid cache record %s: %s", key[:12], e)
                continue

            expected = fingerprint(record.question_text)
            if key != expected or record.fingerprint != expected or not is_fingerprint(key):
                record = record.model_copy(update={"fingerprint": expected})
                rekeyed += 1

            current = by_key.get(expected)
            if current is None or record.last_accessed_at > current.last_accessed_at:
                by_key[expected] = record

        if skipped or rekeyed:
            logger.warning(
                "Cache load: %d invalid records skipped, %d re-keyed", skipped, rekeyed,
            )
        return list(by_key.values()), bool(skipped or rekeyed)

    # --- Flush ---

    def flush(self, force: bool = False) -> bool:
        """Write the store to disk if it is dirty (or ``force``).

        The snapshot is staged under the store lock; serialization and disk
        I/O happen after it is released. Concurrent flushes are serialized.

        Returns:
            True if a file was written.

        Raises:
            PersistenceError: If serialization or the write failed. The store
                is left untouched and stays dirty.
        """
        if not force and not self._store.dirty:
            return False

        with self._flush_lock:
            if not force and not self._store.dirty:
                return False

            snapshot = self._store.snapshot()
            try:
                payload = json.dumps(snapshot.documents, indent=2, ensure_ascii=False)
            except (TypeError, ValueError) as e:
                raise PersistenceError(self.path, "serialize", e) from e

            self._write_atomic(payload)
            clean = self._store.mark_clean(snapshot.version)

        logger.debug(
            "Cache saved: %d entries%s", len(snapshot.documents),
            "" if clean else " (store changed during flush)",
        )
        return True

    def _write_atomic(self, payload: str) -> None:
        self._backup()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._write_temp(payload)
            os.replace(self.temp_path, self.path)
        except OSError as e:
            self._discard_temp()
            self._restore_backup()
            raise PersistenceError(self.path, "flush", e) from e

    def _write_temp(self, payload: str) -> None:
        with open(self.temp_path, "w", encoding="utf-8") as fh:
            fh.write(payload)
            fh.flush()
            os.fsync(fh.fileno())

    def _write_empty(self) -> None:
        try:
            self._write_atomic("{}")
        except PersistenceError as e:
            logger.error("Could not create cache file: %s", e)

    def _backup(self) -> None:
        if not self.path.exists():
            return
        try:
            shutil.copy2(self.path, self.backup_path)
        except OSError as e:
            logger.warning("Cache backup failed, continuing without it: %s", e)

    def _restore_backup(self) -> None:
        if self.path.exists() or not self.backup_path.exists():
            return
        try:
            shutil.copy2(self.backup_path, self.path)
            logger.warning("Primary cache file restored from backup")
        except OSError as e:
            logger.error("Failed to restore cache from backup: %s", e)

    def _discard_temp(self) -> None:
        if not self.temp_path.exists():
            return
        try:
            self.temp_path.unlink()
            logger.info("Discarded incomplete cache write %s", self.temp_path)
        except OSError as e:
            logger.warning("Could not remove %s: %s", self.temp_path, e)
