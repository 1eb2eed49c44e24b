"""
Storage Layer

RESPONSIBILITY: Persist and reload the per-narrative store document
ALLOWED INPUTS: StoreDocument (domain.serialization)
OUTPUTS: LoadResult / SaveResult with explicit error states

WHAT THIS LAYER MUST NOT DO:
============================
- Interpret events or run folds
- Repair or rewrite history on load
- Raise on unreadable input (return an Error instead)

BOUNDARY ENFORCEMENT:
=====================
- One document per narrative, written whole
- File writes are atomic (temporary file + rename); a crash mid-write
  leaves the previous document intact
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional
import json
import logging
import os
import tempfile

from ..contracts.base import Error, ErrorCode
from ..domain.serialization import StoreDocument, dumps


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadResult:
    success: bool
    document: Optional[StoreDocument] = None
    error: Optional[Error] = None


@dataclass(frozen=True)
class SaveResult:
    success: bool
    error: Optional[Error] = None


# =============================================================================
# STORAGE INTERFACES (Dependency Inversion)
# =============================================================================

class StorageBackend:
    """
    Abstract storage backend interface.

    Implementations can use different storage systems (memory, file)
    while keeping the same whole-document semantics.
    """

    def load(self) -> LoadResult:
        """Read the stored document. A missing store loads as empty."""
        raise NotImplementedError

    def save(self, document: StoreDocument) -> SaveResult:
        """Replace the stored document."""
        raise NotImplementedError


def _decode(raw: Dict[str, Any], source: str) -> LoadResult:
    try:
        document = StoreDocument.from_dict(raw)
    except (ValueError, TypeError, KeyError) as exc:
        logger.warning("Store at %s is corrupt: %s", source, exc)
        return LoadResult(
            success=False,
            error=Error.create(ErrorCode.STORE_CORRUPTION, f"Unreadable store: {exc}", source=source),
        )
    return LoadResult(success=True, document=document)


class InMemoryStorageBackend(StorageBackend):
    """
    In-memory backend.

    Stores the serialized form, so a save/load cycle exercises the same
    encoding as the file backend.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._raw: Optional[Dict[str, Any]] = initial

    @property
    def raw(self) -> Optional[Dict[str, Any]]:
        return self._raw

    def load(self) -> LoadResult:
        if self._raw is None:
            return LoadResult(success=True, document=StoreDocument())
        return _decode(self._raw, "memory")

    def save(self, document: StoreDocument) -> SaveResult:
        self._raw = json.loads(dumps(document.to_dict(), indent=None))
        return SaveResult(success=True)


class FileStorageBackend(StorageBackend):
    """
    JSON file backend.

    The whole document lives in one file; saves go through a temporary
    file in the same directory and an atomic rename.
    """

    def __init__(self, path: str):
        self._path = path
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)

    @property
    def path(self) -> str:
        return self._path

    def exists(self) -> bool:
        return os.path.exists(self._path)

    def load(self) -> LoadResult:
        if not self.exists():
            logger.info("No store at %s, starting empty", self._path)
            return LoadResult(success=True, document=StoreDocument())
        try:
            with open(self._path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except json.JSONDecodeError as exc:
            logger.warning("Store at %s is not valid JSON: %s", self._path, exc)
            return LoadResult(
                success=False,
                error=Error.create(
                    ErrorCode.STORE_CORRUPTION, f"Invalid JSON: {exc}", source=self._path
                ),
            )
        except OSError as exc:
            return LoadResult(
                success=False,
                error=Error.create(
                    ErrorCode.STORE_NOT_FOUND, f"Cannot read store: {exc}", source=self._path
                ),
            )
        return _decode(raw, self._path)

    def save(self, document: StoreDocument) -> SaveResult:
        directory = os.path.dirname(os.path.abspath(self._path))
        fd, tmp_path = tempfile.mkstemp(prefix=".chronicle-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(dumps(document.to_dict()))
            os.replace(tmp_path, self._path)
        except OSError as exc:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            return SaveResult(
                success=False,
                error=Error.create(
                    ErrorCode.STORE_WRITE_FAILED, f"Failed to write store: {exc}", source=self._path
                ),
            )
        logger.info(
            "Saved store to %s (%d state events, %d narrative events)",
            self._path, len(document.state_events), len(document.narrative_events),
        )
        return SaveResult(success=True)


@dataclass
class StorageConfig:
    """Configuration for store persistence."""
    backend_type: str = "memory"  # "memory" or "file"
    path: Optional[str] = None


def create_backend(config: Optional[StorageConfig] = None) -> StorageBackend:
    """Create a storage backend based on configuration."""
    config = config or StorageConfig()
    if config.backend_type == "file" and config.path:
        return FileStorageBackend(config.path)
    return InMemoryStorageBackend()
