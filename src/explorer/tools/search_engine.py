"""
Search engine for the filesystem explorer engine.

Answers name/extension queries against whatever the index builder has
accumulated so far, and provides a small helper for callers that need
"latest request wins" semantics when queries are fired per keystroke.
"""

import itertools
import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from ..models.entry import Entry, sort_entries
from ..models.search_query import SearchQuery
from ..models.search_results import ScanState, SearchResults, least_advanced_state
from .index_builder import IndexBuilder, ScanHandle


logger = logging.getLogger(__name__)


class SearchEngine:
    """
    Read-only query layer over the index builder's snapshots.

    A search never blocks on disk I/O or on a running scan; it sees a
    best-effort point-in-time view of each snapshot.
    """

    def __init__(self, builder: IndexBuilder, default_max_results: Optional[int] = None):
        """
        Initialize the search engine.

        Args:
            builder: Index builder whose scans are queried
            default_max_results: Cap applied when a query does not set its own
        """
        self.builder = builder
        self.default_max_results = default_max_results

    def search(self, query: SearchQuery) -> SearchResults:
        """
        Run ``query`` against the current index.

        Args:
            query: Name/extension query

        Returns:
            SearchResults with matches de-duplicated by path, directories first,
            then ordered case-insensitively by name
        """
        start = time.perf_counter()
        handles = [h for h in self.builder.handles() if h.state != ScanState.FAILED]

        matches: Dict[str, Entry] = {}
        total_indexed = 0
        for handle in handles:
            snapshot = handle.snapshot
            total_indexed += len(snapshot)
            for entry in snapshot.lookup(query):
                matches.setdefault(entry.path, entry)

        entries = sort_entries(list(matches.values()))

        max_results = query.max_results or self.default_max_results
        truncated = max_results is not None and len(entries) > max_results
        if truncated:
            entries = entries[:max_results]

        results = SearchResults(
            query=query,
            entries=entries,
            index_state=self._index_state(handles),
            total_indexed=total_indexed,
            truncated=truncated,
            execution_time=time.perf_counter() - start,
        )
        logger.debug(f"Search {query}: {results}")
        return results

    @staticmethod
    def _index_state(handles: List[ScanHandle]) -> Optional[ScanState]:
        return least_advanced_state([h.state for h in handles])


class SearchSession:
    """
    Caller-side supersession for a stream of searches.

    Every query issued through the session gets a monotonically increasing
    request id; only results for the most recently issued id are accepted,
    whatever order the searches complete in.
    """

    def __init__(self, search: Optional[Callable[[SearchQuery], SearchResults]] = None):
        self._search = search
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._latest_id = 0

    @property
    def latest_request_id(self) -> int:
        return self._latest_id

    def next_query(self, name_pattern: str = "", extension: str = "",
                   max_results: Optional[int] = None) -> SearchQuery:
        """Create a query that supersedes every query issued before it."""
        with self._lock:
            request_id = next(self._ids)
            self._latest_id = request_id
        return SearchQuery(
            name_pattern=name_pattern,
            extension=extension,
            request_id=request_id,
            max_results=max_results,
        )

    def is_current(self, results: SearchResults) -> bool:
        return results.request_id is not None and results.request_id == self._latest_id

    def accept(self, results: SearchResults) -> Optional[SearchResults]:
        """
        Filter out superseded results.

        Returns:
            ``results`` if they answer the newest query, otherwise None
        """
        if self.is_current(results):
            return results
        logger.debug(f"Discarding superseded results for request {results.request_id}")
        return None

    def run(self, name_pattern: str = "", extension: str = "") -> Optional[SearchResults]:
        """Issue a query through the bound search callable and accept its result."""
        if self._search is None:
            raise RuntimeError("SearchSession has no search callable bound")
        query = self.next_query(name_pattern, extension)
        return self.accept(self._search(query))
