"""
Boundary service of the filesystem explorer engine.

``ExplorerService`` wires the lister, cache, index builder, search engine and
opener together and exposes the requests a file-manager front end issues:
list a directory, search the indexed tree, open a path. The service keeps no
notion of a current directory; every request carries explicit paths.
"""

import logging
import os
import time
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from .models.config import ExplorerConfig
from .models.entry import Entry, sort_entries
from .models.search_query import SearchQuery
from .models.search_results import ScanState, SearchResults, least_advanced_state
from .tools.dir_cache import DirectoryCache
from .tools.index_builder import IndexBuilder, ScanHandle, is_within
from .tools.lister import DirectoryLister
from .tools.opener import FileOpener
from .tools.search_engine import SearchEngine


logger = logging.getLogger(__name__)


class ServiceStatus(BaseModel):
    """
    Snapshot of the service's indexing progress.

    Attributes:
        initializing: True while scans are running and none has completed or been cancelled
        index_state: Least advanced state among the latest scans
        total_indexed: Entries across all snapshots
        scans: Per-scan progress
        cache: Directory cache counters
    """

    initializing: bool = Field(..., description="Whether the index is still being built")
    index_state: Optional[ScanState] = Field(None, description="Least advanced scan state")
    total_indexed: int = Field(0, ge=0, description="Entries across all snapshots")
    scans: List[Dict[str, Any]] = Field(default_factory=list, description="Per-scan progress")
    cache: Dict[str, int] = Field(default_factory=dict, description="Directory cache counters")

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump()
        data['index_state'] = self.index_state.value if self.index_state else None
        return data


class ExplorerService:
    """Facade answering list, search and open requests."""

    def __init__(self, config: Optional[ExplorerConfig] = None, lister: Optional[DirectoryLister] = None):
        """
        Initialize the service and its components.

        Args:
            config: Engine configuration (defaults index the OS volume roots)
            lister: Directory lister shared by the cache and the index builder
        """
        self.config = config or ExplorerConfig()
        self.lister = lister or DirectoryLister()
        self.cache = DirectoryCache(
            self.lister,
            ttl_seconds=self.config.cache.ttl_seconds,
            max_entries=self.config.cache.max_entries,
        )
        self.builder = IndexBuilder(self.config, self.lister)
        self.engine = SearchEngine(self.builder, self.config.search.max_results)
        self.opener = FileOpener(self.config.opener)

    def list_directory_contents(self, path: str) -> List[Entry]:
        """
        List the direct children of ``path``, directories first.

        Raises:
            DirectoryError: If ``path`` does not exist, is not a directory or is unreadable
        """
        return self.cache.get(path).to_list()

    def search_files(self, name: str = "", extension: str = "", request_id: Optional[int] = None,
                     max_results: Optional[int] = None) -> SearchResults:
        """
        Search the index by name substring and exact extension.

        Starts indexing the configured roots first if nothing was indexed yet.

        Args:
            name: Case-insensitive name substring (empty matches everything)
            extension: Exact extension filter (empty means any)
            request_id: Id echoed back on the results
            max_results: Optional cap on returned entries

        Returns:
            SearchResults for the query
        """
        query = SearchQuery(
            name_pattern=name,
            extension=extension,
            request_id=request_id,
            max_results=max_results,
        )
        return self.search(query)

    def search(self, query: SearchQuery) -> SearchResults:
        """Run a prepared query, starting the initial scan if needed."""
        if not self.builder.handles() and self.config.scan.auto_start:
            handles = self.start_indexing()
            self._wait_for(handles, self.config.scan.initial_wait_seconds)
        return self.engine.search(query)

    def open_file(self, path: str) -> None:
        """
        Open ``path`` with the OS default application.

        Raises:
            OpenError: If the path is missing, unreadable or has no handler
        """
        self.opener.open(path)

    def get_file_meta(self, path: str) -> Entry:
        """
        Read metadata for a single path from disk.

        Raises:
            StatError: If the path cannot be stat'ed
        """
        return Entry.from_path(path)

    def get_directory_size(self, path: str) -> int:
        """Sum the sizes of the indexed files below ``path``."""
        sizes: Dict[str, int] = {}
        for snapshot in self.builder.snapshots():
            if not self._may_contain(snapshot.root, path):
                continue
            for entry in snapshot.files_under(path):
                sizes[entry.path] = entry.size
        return sum(sizes.values())

    def index_has_entries(self) -> bool:
        return any(len(snapshot) > 0 for snapshot in self.builder.snapshots())

    def list_children(self, path: str) -> List[Entry]:
        """List the direct children of ``path`` from the index, without disk I/O."""
        children: Dict[str, Entry] = {}
        for snapshot in self.builder.snapshots():
            for entry in snapshot.children_of(path):
                children.setdefault(entry.path, entry)
        return sort_entries(list(children.values()))

    def start_indexing(self, roots: Optional[Iterable[str]] = None) -> List[ScanHandle]:
        """
        Start background scans of ``roots`` (defaults to the configured roots).

        Returns:
            One handle per root (existing handles for roots already being scanned)
        """
        return [self.builder.start_scan(root) for root in (roots or self.config.roots)]

    def refresh(self, path: Optional[str] = None, reindex: bool = False) -> List[ScanHandle]:
        """
        Drop cached listings and optionally rebuild the index.

        Args:
            path: Directory to refresh, or None for everything
            reindex: Also rescan the indexed root containing ``path`` (all roots if None)

        Returns:
            Handles of the scans started by the refresh
        """
        self.cache.invalidate(path)
        if not reindex:
            return []

        if path is None:
            roots = [handle.root for handle in self.builder.handles()] or list(self.config.roots)
        else:
            root = self._indexed_root_for(path) or self.config.get_root_for(path)
            roots = [root] if root else []

        logger.info(f"Refreshing index of {', '.join(roots) or 'nothing'}")
        return [self.builder.refresh(root) for root in roots]

    def status(self) -> ServiceStatus:
        """Report indexing progress for an 'initializing' indicator."""
        handles = self.builder.handles()
        states = [h.state for h in handles]
        finished = any(s in (ScanState.COMPLETED, ScanState.CANCELLED) for s in states)
        return ServiceStatus(
            initializing=not handles or (any(s.is_active for s in states) and not finished),
            index_state=least_advanced_state(states),
            total_indexed=sum(len(h.snapshot) for h in handles),
            scans=[h.to_dict() for h in handles],
            cache=self.cache.stats(),
        )

    def close(self, wait: bool = True) -> None:
        """Cancel running scans and stop the worker pool."""
        self.builder.shutdown(wait=wait)

    def __enter__(self) -> 'ExplorerService':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _indexed_root_for(self, path: str) -> Optional[str]:
        target = os.path.abspath(path)
        roots = [h.root for h in self.builder.handles()
                 if h.root == target or is_within(target, h.root)]
        return max(roots, key=len) if roots else None

    @staticmethod
    def _may_contain(root: str, path: str) -> bool:
        target = os.path.abspath(path)
        return root == target or is_within(target, root) or is_within(root, target)

    @staticmethod
    def _wait_for(handles: List[ScanHandle], timeout: float) -> None:
        if timeout <= 0:
            return
        deadline = time.monotonic() + timeout
        for handle in handles:
            remaining = deadline - time.monotonic()
            if remaining <= 0 or not handle.wait(remaining):
                logger.info("Initial scan still running; serving partial results")
                return
