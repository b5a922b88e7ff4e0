"""
Directory lister for the filesystem explorer engine.

Reads the direct children of one directory on demand. Children whose metadata
cannot be read are dropped from the listing; failures on the requested
directory itself are raised as ``DirectoryError`` subclasses.
"""

import errno
import logging
import os
from typing import List, Tuple

from ..models.entry import DirectoryListing, Entry, normalize_path
from ..models.errors import (
    DirectoryError,
    DirectoryNotADirectoryError,
    DirectoryNotFoundError,
    DirectoryPermissionError,
    StatError,
)


logger = logging.getLogger(__name__)


def directory_error_for(path: str, error: OSError) -> DirectoryError:
    """
    Map an ``OSError`` raised while opening ``path`` to a ``DirectoryError``.

    Args:
        path: Directory that was being listed
        error: The OS error

    Returns:
        The matching DirectoryError subclass instance
    """
    reason = error.strerror or str(error)
    if isinstance(error, FileNotFoundError) or error.errno == errno.ENOENT:
        return DirectoryNotFoundError(path, reason)
    if isinstance(error, NotADirectoryError) or error.errno == errno.ENOTDIR:
        return DirectoryNotADirectoryError(path, reason)
    if isinstance(error, PermissionError) or error.errno in (errno.EACCES, errno.EPERM):
        return DirectoryPermissionError(path, reason)
    return DirectoryError(path, reason)


class DirectoryLister:
    """
    Lists the direct children of a directory.

    The lister holds no state; it is safe to share between threads.
    """

    def read_entries(self, path: str) -> Tuple[List[Entry], int]:
        """
        Enumerate the direct children of ``path`` without sorting.

        Args:
            path: Directory to enumerate (normalized internally)

        Returns:
            Tuple of (entries, number of children that could not be described)

        Raises:
            DirectoryError: If ``path`` itself cannot be listed
        """
        path = normalize_path(path)
        entries = []
        skipped = 0

        try:
            with os.scandir(path) as it:
                for child in it:
                    child_path = os.path.join(path, child.name)
                    try:
                        try:
                            stat_result = child.stat()
                        except OSError as e:
                            raise StatError(child_path, e.strerror or str(e)) from e
                        entries.append(Entry.from_path(child_path, stat_result))
                    except StatError as e:
                        logger.debug(f"Skipping unreadable entry {child_path}: {e.message}")
                        skipped += 1
        except OSError as e:
            raise directory_error_for(path, e) from e

        return entries, skipped

    def list(self, path: str) -> DirectoryListing:
        """
        List the direct children of ``path`` in listing order.

        Args:
            path: Directory to list

        Returns:
            DirectoryListing with directories first, then names case-insensitively

        Raises:
            DirectoryNotFoundError: If ``path`` does not exist
            DirectoryNotADirectoryError: If ``path`` is not a directory
            DirectoryPermissionError: If ``path`` cannot be read
        """
        parent = normalize_path(path)
        entries, skipped = self.read_entries(parent)
        if skipped:
            logger.debug(f"Listed {parent} with {skipped} unreadable entries omitted")
        return DirectoryListing(parent=parent, entries=tuple(entries), skipped=skipped)
