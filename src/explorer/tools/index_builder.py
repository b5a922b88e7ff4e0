"""
Background index builder for the filesystem explorer engine.

This module walks directory trees breadth-first on a small worker pool and
accumulates every entry it finds into an in-memory ``IndexSnapshot`` that the
search engine reads concurrently. Scans are cancellable between directory
visits, tolerate inaccessible sub-trees and skip symlink cycles.
"""

import itertools
import logging
import os
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Deque, Dict, List, Optional

from ..models.config import ExplorerConfig
from ..models.entry import Entry, normalize_path, sort_entries
from ..models.errors import DirectoryError, ScanFailure, ScanWarning, ScanWarningKind
from ..models.search_query import SearchQuery
from ..models.search_results import ScanState
from .lister import DirectoryLister


logger = logging.getLogger(__name__)


def is_within(path: str, directory: str) -> bool:
    """Check whether ``path`` lies strictly below ``directory``."""
    prefix = directory if directory.endswith(os.sep) else directory + os.sep
    return path.startswith(prefix)


class IndexSnapshot:
    """
    Searchable in-memory state accumulated by one scan.

    Entries are keyed by path and additionally bucketed by case-folded name,
    by extension and by parent directory. Only the owning scan worker calls
    ``add``; any number of readers may query concurrently. The lock is held
    only for a single insert or while candidates are collected, never across
    disk I/O.
    """

    def __init__(self, root: str):
        self.root = root
        self.created_at = time.time()
        self._lock = threading.Lock()
        self._by_path: Dict[str, Entry] = {}
        self._by_name: Dict[str, Dict[str, Entry]] = {}
        self._by_extension: Dict[str, Dict[str, Entry]] = {}
        self._by_parent: Dict[str, Dict[str, Entry]] = {}

    def add(self, entry: Entry) -> bool:
        """
        Insert an entry.

        Returns:
            False if an entry with the same path was already present
        """
        with self._lock:
            if entry.path in self._by_path:
                return False
            self._by_path[entry.path] = entry
            self._by_name.setdefault(entry.name.casefold(), {})[entry.path] = entry
            if entry.extension:
                self._by_extension.setdefault(entry.extension, {})[entry.path] = entry
            self._by_parent.setdefault(entry.get_parent(), {})[entry.path] = entry
        return True

    def lookup(self, query: SearchQuery) -> List[Entry]:
        """
        Return the entries matching ``query`` (unsorted).

        Args:
            query: Name/extension query

        Returns:
            Matching entries as of the moment the lock was taken
        """
        pattern = query.folded_pattern
        with self._lock:
            if query.has_extension_filter():
                bucket = self._by_extension.get(query.extension)
                candidates = list(bucket.values()) if bucket else []
            elif pattern:
                candidates = [
                    entry
                    for name, bucket in self._by_name.items() if pattern in name
                    for entry in bucket.values()
                ]
            else:
                return list(self._by_path.values())

        return [entry for entry in candidates if query.matches(entry.name, entry.extension)]

    def get(self, path: str) -> Optional[Entry]:
        with self._lock:
            return self._by_path.get(normalize_path(path))

    def children_of(self, directory: str) -> List[Entry]:
        """Return the indexed direct children of ``directory`` in listing order."""
        with self._lock:
            bucket = self._by_parent.get(normalize_path(directory))
            children = list(bucket.values()) if bucket else []
        return sort_entries(children)

    def files_under(self, directory: str) -> List[Entry]:
        """Return every indexed file anywhere below ``directory``."""
        directory = normalize_path(directory)
        with self._lock:
            entries = list(self._by_path.values())
        return [e for e in entries if not e.is_directory and is_within(e.path, directory)]

    def total_size(self, directory: str) -> int:
        """Sum the sizes of all indexed files below ``directory``."""
        return sum(e.size for e in self.files_under(directory))

    def entries(self) -> List[Entry]:
        with self._lock:
            return list(self._by_path.values())

    def counts(self) -> Dict[str, int]:
        """Get the number of indexed files and directories."""
        with self._lock:
            total = len(self._by_path)
            directories = sum(1 for e in self._by_path.values() if e.is_directory)
        return {'entries': total, 'files': total - directories, 'directories': directories}

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return normalize_path(path) in self._by_path

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_path)

    def __repr__(self) -> str:
        return f"IndexSnapshot(root={self.root!r}, entries={len(self)})"


class ScanHandle:
    """
    Handle to one scan of one root.

    The scan worker is the only writer of the handle's state; callers read it
    and may request cancellation.

    Attributes:
        scan_id: Unique id of the scan within the process
        root: Normalized scan root
        snapshot: The snapshot being populated
        state: Current lifecycle state
        failure: ScanFailure when the root itself was unreachable
    """

    _ids = itertools.count(1)

    def __init__(self, root: str):
        self.scan_id = next(self._ids)
        self.root = root
        self.snapshot = IndexSnapshot(root)
        self.state = ScanState.PENDING
        self.failure: Optional[ScanFailure] = None
        self.directories_visited = 0
        self.entries_indexed = 0
        self.entries_ignored = 0
        self.entries_skipped = 0
        self.started_at: Optional[float] = None
        self.finished_at: Optional[float] = None
        self._warnings: List[ScanWarning] = []
        self._cancel_event = threading.Event()
        self._done_event = threading.Event()
        self._future: Optional[Future] = None

    @property
    def warnings(self) -> List[ScanWarning]:
        return list(self._warnings)

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def is_done(self) -> bool:
        return self._done_event.is_set()

    def cancel(self) -> None:
        """Request cooperative cancellation; takes effect before the next directory visit."""
        self._cancel_event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the scan reaches a terminal state.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely

        Returns:
            True if the scan finished within the timeout
        """
        return self._done_event.wait(timeout)

    def get_duration(self) -> Optional[float]:
        if self.started_at is None:
            return None
        return (self.finished_at or time.time()) - self.started_at

    def _start(self) -> None:
        self.started_at = time.time()
        self.state = ScanState.RUNNING

    def _warn(self, kind: ScanWarningKind, path: str, message: str = "") -> None:
        warning = ScanWarning(kind=kind, path=path, message=message)
        self._warnings.append(warning)
        logger.warning(f"Scan {self.scan_id}: {warning}")

    def _finish(self, state: ScanState) -> None:
        self.finished_at = time.time()
        if self.started_at is None:
            self.started_at = self.finished_at
        self.state = state
        self._done_event.set()

    def to_dict(self) -> Dict[str, Any]:
        """Convert the scan's progress to a dictionary representation."""
        return {
            'scan_id': self.scan_id,
            'root': self.root,
            'state': self.state.value,
            'directories_visited': self.directories_visited,
            'entries_indexed': self.entries_indexed,
            'entries_ignored': self.entries_ignored,
            'entries_skipped': self.entries_skipped,
            'warnings': [w.to_dict() for w in self._warnings],
            'failure': self.failure.to_dict() if self.failure else None,
            'duration': self.get_duration(),
        }

    def __repr__(self) -> str:
        return f"ScanHandle(id={self.scan_id}, root={self.root!r}, state={self.state.value})"


class IndexBuilder:
    """
    Runs index scans on a bounded worker pool.

    At most one active scan exists per root: starting a scan for a root whose
    scan is still running returns the running scan's handle.
    """

    def __init__(self, config: Optional[ExplorerConfig] = None, lister: Optional[DirectoryLister] = None):
        """
        Initialize the index builder.

        Args:
            config: Configuration providing ignore patterns and the pool size
            lister: Directory lister used for enumeration
        """
        self.config = config or ExplorerConfig()
        self.lister = lister or DirectoryLister()
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.scan.max_workers,
            thread_name_prefix="explorer-scan",
        )
        self._lock = threading.Lock()
        self._handles: Dict[str, ScanHandle] = {}

    def start_scan(self, root: str) -> ScanHandle:
        """
        Start (or join) a background scan of ``root``.

        Args:
            root: Directory to index

        Returns:
            Handle of the new scan, or of the scan already running for ``root``
        """
        root = normalize_path(root)
        with self._lock:
            existing = self._handles.get(root)
            if existing is not None and not existing.is_done and not existing.cancel_requested:
                logger.debug(f"Scan of {root} already running as {existing.scan_id}")
                return existing
            handle = ScanHandle(root)
            self._handles[root] = handle

        logger.info(f"Starting scan {handle.scan_id} of {root}")
        handle._future = self._executor.submit(self._run_scan, handle)
        return handle

    def cancel(self, handle: ScanHandle) -> None:
        """Request cancellation of a scan."""
        logger.info(f"Cancelling scan {handle.scan_id} of {handle.root}")
        handle.cancel()

    def current_snapshot(self, handle: ScanHandle) -> IndexSnapshot:
        """Return the snapshot a scan is populating (valid at any state)."""
        return handle.snapshot

    def latest_handle(self, root: str) -> Optional[ScanHandle]:
        with self._lock:
            return self._handles.get(normalize_path(root))

    def handles(self) -> List[ScanHandle]:
        with self._lock:
            return list(self._handles.values())

    def snapshots(self) -> List[IndexSnapshot]:
        """Snapshots of the latest scan of every root, excluding failed scans."""
        return [h.snapshot for h in self.handles() if h.state != ScanState.FAILED]

    def refresh(self, root: str) -> ScanHandle:
        """
        Discard the index of ``root`` and scan it again.

        Any running scan of ``root`` is cancelled; its snapshot is dropped.
        """
        existing = self.latest_handle(root)
        if existing is not None and not existing.is_done:
            self.cancel(existing)
        return self.start_scan(root)

    def discard(self, root: str) -> None:
        """Cancel and forget the scan of ``root``."""
        with self._lock:
            handle = self._handles.pop(normalize_path(root), None)
        if handle is not None:
            handle.cancel()

    def shutdown(self, wait: bool = True) -> None:
        """Cancel every scan and stop the worker pool."""
        for handle in self.handles():
            handle.cancel()
            if handle._future is not None and handle._future.cancel():
                handle._finish(ScanState.CANCELLED)
        self._executor.shutdown(wait=wait)

    def _run_scan(self, handle: ScanHandle) -> None:
        """Worker entry point; records unexpected errors on the handle."""
        try:
            self._scan(handle)
        except Exception as e:
            logger.exception(f"Scan {handle.scan_id} of {handle.root} crashed")
            handle.failure = ScanFailure(handle.root, f"Unexpected error: {e}")
            handle._finish(ScanState.FAILED)

    def _scan(self, handle: ScanHandle) -> None:
        """Breadth-first traversal of ``handle.root``."""
        handle._start()
        root = handle.root

        if handle.cancel_requested:
            handle._finish(ScanState.CANCELLED)
            return

        try:
            entries, skipped = self.lister.read_entries(root)
        except DirectoryError as e:
            handle.failure = ScanFailure(root, e.message)
            logger.error(f"Scan {handle.scan_id} failed: {handle.failure}")
            handle._finish(ScanState.FAILED)
            return

        visited = {os.path.realpath(root)}
        queue: Deque[str] = deque()
        self._index_directory(handle, entries, skipped, queue)

        while queue:
            if handle.cancel_requested:
                logger.info(f"Scan {handle.scan_id} cancelled after {handle.directories_visited} directories")
                handle._finish(ScanState.CANCELLED)
                return

            directory = queue.popleft()
            real_path = os.path.realpath(directory)
            if real_path in visited:
                handle._warn(ScanWarningKind.CYCLE_SKIPPED, directory, f"already visited as {real_path}")
                continue
            visited.add(real_path)

            try:
                entries, skipped = self.lister.read_entries(directory)
            except DirectoryError as e:
                handle._warn(ScanWarningKind.SUBTREE_INACCESSIBLE, directory, e.message)
                continue

            self._index_directory(handle, entries, skipped, queue)

        if handle.cancel_requested:
            logger.info(f"Scan {handle.scan_id} cancelled after {handle.directories_visited} directories")
            handle._finish(ScanState.CANCELLED)
            return

        logger.info(
            f"Scan {handle.scan_id} of {root} completed: "
            f"{handle.entries_indexed} entries in {handle.directories_visited} directories"
        )
        handle._finish(ScanState.COMPLETED)

    def _index_directory(self, handle: ScanHandle, entries: List[Entry], skipped: int,
                         queue: Deque[str]) -> None:
        """Insert one directory's entries and enqueue its subdirectories."""
        for entry in entries:
            if self.config.should_ignore(entry.path):
                handle.entries_ignored += 1
                continue
            if handle.snapshot.add(entry):
                handle.entries_indexed += 1
            if entry.is_directory:
                queue.append(entry.path)
        handle.entries_skipped += skipped
        handle.directories_visited += 1
