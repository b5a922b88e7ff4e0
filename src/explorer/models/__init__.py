"""
Data models for the filesystem explorer engine.

This module contains the entry model, queries, results, configuration and the
error taxonomy shared by every component.
"""

from .entry import DirectoryListing, Entry, listing_sort_key
from .errors import (
    ConfigurationError,
    DirectoryError,
    DirectoryNotADirectoryError,
    DirectoryNotFoundError,
    DirectoryPermissionError,
    ExplorerError,
    NoHandlerAvailableError,
    OpenError,
    OpenNotFoundError,
    OpenPermissionError,
    ScanFailure,
    ScanWarning,
    ScanWarningKind,
    StatError,
)
from .search_query import SearchQuery
from .search_results import ScanState, SearchResults

__all__ = [
    'DirectoryListing',
    'Entry',
    'listing_sort_key',
    'ConfigurationError',
    'DirectoryError',
    'DirectoryNotADirectoryError',
    'DirectoryNotFoundError',
    'DirectoryPermissionError',
    'ExplorerError',
    'NoHandlerAvailableError',
    'OpenError',
    'OpenNotFoundError',
    'OpenPermissionError',
    'ScanFailure',
    'ScanWarning',
    'ScanWarningKind',
    'StatError',
    'SearchQuery',
    'ScanState',
    'SearchResults',
]
