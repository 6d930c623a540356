"""Sync file watcher: PollingObserver + session resume.

Watches the directory holding the sync file. When another device modifies
the file, waits for it to stop changing, then pulls it into the session and
re-runs the recurring pass. Our own writes are recognized by content digest
and ignored.

Uses PollingObserver because cloud-synced folders and network shares do not
reliably deliver native filesystem events.
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEventHandler

from kasa.ledger.errors import LedgerError
from kasa.ledger.recurring import RecurringRunResult
from kasa.storage.document import DocumentError
from kasa.sync.transport import SyncError, content_hash

if TYPE_CHECKING:
    from kasa.session import LedgerSession

logger = logging.getLogger(__name__)

DEFAULT_STABILITY_SECONDS = 2
DEFAULT_CHECK_INTERVAL = 0.5
DEFAULT_POLL_INTERVAL = 5


def wait_for_stable(
    filepath: Path,
    stability_seconds: float = DEFAULT_STABILITY_SECONDS,
    check_interval: float = DEFAULT_CHECK_INTERVAL,
    max_wait: float = 60.0,
) -> None:
    """Wait until file size and mtime are stable for stability_seconds.

    Raises:
        TimeoutError: If the file doesn't stabilize within max_wait.
    """
    prev_size = -1
    prev_mtime = -1.0
    stable_since: float | None = None
    start = time.monotonic()

    while True:
        if time.monotonic() - start > max_wait:
            raise TimeoutError(f"File did not stabilize within {max_wait}s: {filepath}")

        stat = filepath.stat()
        if stat.st_size == prev_size and stat.st_mtime == prev_mtime:
            if stable_since is None:
                stable_since = time.monotonic()
            if time.monotonic() - stable_since >= stability_seconds:
                return
        else:
            stable_since = None

        prev_size = stat.st_size
        prev_mtime = stat.st_mtime
        time.sleep(check_interval)


class SyncFileWatcher(FileSystemEventHandler):
    """Reload the session whenever the sync file changes on disk.

    Args:
        session: Open LedgerSession with a sync file.
        stability_seconds: Seconds the file must be unchanged before reading.
        check_interval: Seconds between stability checks.
        poll_interval: PollingObserver timeout.
    """

    def __init__(
        self,
        session: LedgerSession,
        stability_seconds: float = DEFAULT_STABILITY_SECONDS,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        if session.sync is None:
            raise ValueError("Session has no sync file to watch")
        self.session = session
        self.path = Path(session.sync.path)
        self.stability_seconds = stability_seconds
        self.check_interval = check_interval
        self.poll_interval = poll_interval
        self._observer = None
        self._lock = threading.Lock()

    def start(self) -> None:
        """Start watching the sync file's directory."""
        from watchdog.observers.polling import PollingObserver

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._observer = PollingObserver(timeout=self.poll_interval)
        self._observer.schedule(self, str(self.path.parent), recursive=False)
        self._observer.start()
        logger.info("Watching %s for external changes", self.path)

    def stop(self) -> None:
        """Stop watching."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.info("Sync file watcher stopped")

    def _is_sync_file(self, event) -> bool:
        if event.is_directory:
            return False
        candidates = [getattr(event, "src_path", None), getattr(event, "dest_path", None)]
        return any(c and Path(c).name == self.path.name for c in candidates)

    def on_modified(self, event) -> None:
        if self._is_sync_file(event):
            self.process_change()

    def on_created(self, event) -> None:
        if self._is_sync_file(event):
            self.process_change()

    def on_moved(self, event) -> None:
        # Atomic replacements arrive as a move onto the sync file name
        if self._is_sync_file(event):
            self.process_change()

    def process_change(self) -> RecurringRunResult | None:
        """Pull and resume, one change at a time. Returns None when skipped."""
        with self._lock:
            try:
                wait_for_stable(
                    self.path,
                    stability_seconds=self.stability_seconds,
                    check_interval=self.check_interval,
                )
                digest = content_hash(self.path.read_text(encoding="utf-8"))
                if digest == self.session.sync.last_written_digest:
                    logger.debug("Ignoring our own write to %s", self.path)
                    return None
                logger.info("Sync file changed externally: %s", self.path.name)
                return self.session.resume()
            except FileNotFoundError:
                logger.warning("Sync file disappeared: %s", self.path)
            except TimeoutError as e:
                logger.error("Sync file stability timeout: %s", e)
            except (SyncError, LedgerError, DocumentError, UnicodeDecodeError) as e:
                logger.error("Sync reload failed: %s", e)
            return None
