"""Sync file transport: read and write the shared JSON document.

The sync file lives somewhere another device can also write (a cloud-synced
folder, a NAS share). Reads tolerate an empty file; writes go through a
temporary file and an atomic rename so a concurrent reader never sees a
half-written document.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from kasa.ledger.models import LedgerState
from kasa.storage.document import derive_last_sync, serialize

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Base class for sync transport failures."""


class SyncPermissionError(SyncError):
    """Raised when the sync file cannot be read or written for lack of permission."""

    def __init__(self, path: Path, action: str):
        self.path = path
        self.action = action
        super().__init__(f"Permission denied to {action} sync file: {path}")


class CorruptDocumentError(SyncError):
    """Raised when the sync file does not contain a valid JSON document."""

    def __init__(self, path: Path, detail: str):
        self.path = path
        super().__init__(f"Sync file {path} is not a valid document: {detail}")


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass
class SyncSnapshot:
    """A document read from the sync file."""
    document: dict | None
    last_sync: str | None
    digest: str


class SyncFile:
    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.last_written_digest: str | None = None

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> SyncSnapshot:
        """Read and parse the document.

        An empty or missing file yields a snapshot without a document.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            logger.info("Sync file %s does not exist yet", self.path)
            return SyncSnapshot(document=None, last_sync=None, digest=content_hash(""))
        except PermissionError as e:
            raise SyncPermissionError(self.path, "read") from e
        except UnicodeDecodeError as e:
            raise CorruptDocumentError(self.path, f"not valid UTF-8: {e}") from e

        digest = content_hash(text)
        if not text.strip():
            logger.info("Sync file %s is empty, keeping local data", self.path)
            return SyncSnapshot(document=None, last_sync=None, digest=digest)
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise CorruptDocumentError(self.path, str(e)) from e
        if not isinstance(document, dict):
            raise CorruptDocumentError(self.path, "top level is not an object")

        last_sync = derive_last_sync(document, self.path.name, mtime)
        logger.info("Read sync file %s (last sync %s)", self.path, last_sync)
        return SyncSnapshot(document=document, last_sync=last_sync, digest=digest)

    def write(self, state: LedgerState, now: datetime | None = None) -> dict:
        """Serialize `state` and atomically replace the sync file.

        Returns the document written.
        """
        document = serialize(state, now)
        text = json.dumps(document, ensure_ascii=False, indent=2)
        self.write_text(text)
        return document

    def write_text(self, text: str) -> None:
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=directory,
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(text)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except PermissionError as e:
            raise SyncPermissionError(self.path, "write") from e
        self.last_written_digest = content_hash(text)
        logger.info("Wrote sync file %s", self.path)
