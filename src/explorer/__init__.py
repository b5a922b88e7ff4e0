"""
Filesystem Explorer - Core Package

An in-memory filesystem index and search engine that lists directories,
searches the indexed tree by name and extension, and opens entries with the
operating system's default application.
"""

from .service import ExplorerService, ServiceStatus

__version__ = "0.1.0"

__all__ = ['ExplorerService', 'ServiceStatus']
