"""
Search results data models for the filesystem explorer engine.

This module defines the scan lifecycle states reported alongside results and
the result set returned by the search engine.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .entry import Entry, sort_entries
from .search_query import SearchQuery


class ScanState(Enum):
    """Lifecycle states of an index scan."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanState.COMPLETED, ScanState.CANCELLED, ScanState.FAILED)

    @property
    def is_active(self) -> bool:
        return not self.is_terminal


# Lower rank means "less advanced"; used to summarize several scans in one state.
_STATE_RANK = {
    ScanState.PENDING: 0,
    ScanState.RUNNING: 1,
    ScanState.FAILED: 2,
    ScanState.CANCELLED: 3,
    ScanState.COMPLETED: 4,
}


def least_advanced_state(states: List[ScanState]) -> Optional[ScanState]:
    """Return the least advanced of ``states``, or None if there are none."""
    if not states:
        return None
    return min(states, key=lambda s: _STATE_RANK[s])


class SearchResults(BaseModel):
    """
    Results of one search request.

    The result reflects a best-effort point-in-time view of the index; entries
    discovered by a running scan after the read began may be missing.

    Attributes:
        query: The query that produced these results
        entries: Matching entries in listing order
        index_state: Least advanced state among the consulted scans, or None if
            no index existed
        total_indexed: Number of entries in the index at read time
        truncated: Whether ``query.max_results`` cut the result set
        execution_time: Time taken to answer the query in seconds
        timestamp: When the query was answered
    """

    query: SearchQuery = Field(..., description="The originating query")
    entries: List[Entry] = Field(default_factory=list, description="Matching entries")
    index_state: Optional[ScanState] = Field(None, description="State of the consulted index")
    total_indexed: int = Field(0, ge=0, description="Entries in the index at read time")
    truncated: bool = Field(False, description="Whether results were truncated")
    execution_time: float = Field(0.0, ge=0.0, description="Time taken in seconds")
    timestamp: datetime = Field(default_factory=datetime.now, description="When the query was answered")

    @property
    def request_id(self) -> Optional[int]:
        return self.query.request_id

    @property
    def is_complete(self) -> bool:
        """Whether the results came from a fully scanned index."""
        return self.index_state == ScanState.COMPLETED

    @property
    def is_initializing(self) -> bool:
        """Whether the index was still being built when the query ran."""
        return self.index_state is None or self.index_state.is_active

    def get_match_count(self) -> int:
        return len(self.entries)

    def get_directories(self) -> List[Entry]:
        return [e for e in self.entries if e.is_directory]

    def get_files(self) -> List[Entry]:
        return [e for e in self.entries if not e.is_directory]

    def get_paths(self) -> List[str]:
        return [e.path for e in self.entries]

    def sort_entries(self) -> None:
        """Restore listing order after entries were added manually."""
        self.entries = sort_entries(self.entries)

    def to_dict(self) -> Dict[str, Any]:
        """Convert search results to dictionary representation."""
        return {
            'request_id': self.request_id,
            'query': self.query.to_dict(),
            'entries': [entry.to_dict() for entry in self.entries],
            'match_count': self.get_match_count(),
            'index_state': self.index_state.value if self.index_state else None,
            'total_indexed': self.total_indexed,
            'truncated': self.truncated,
            'execution_time': self.execution_time,
            'timestamp': self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"Found {self.get_match_count()} matches"]
        parts.append(f"Indexed {self.total_indexed} entries")
        parts.append(f"Index: {self.index_state.value if self.index_state else 'none'}")
        parts.append(f"Took {self.execution_time:.3f}s")
        return " | ".join(parts)
