"""
Entry data models for the filesystem explorer engine.

This module defines the immutable description of one filesystem node and the
ordered listing of a directory's direct children. Both share one ordering
contract (directories first, then case-insensitive name) so that listings and
search results can be rendered the same way.
"""

import os
import stat
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import StatError


def normalize_path(path: str) -> str:
    """
    Normalize a path to its absolute, OS-native form.

    Expands ``~``, collapses relative segments and strips trailing separators
    (except for filesystem roots, which keep theirs).

    Args:
        path: Path as supplied by a caller

    Returns:
        Normalized absolute path string
    """
    return os.path.abspath(os.path.expanduser(os.fspath(path)))


def entry_name(path: str) -> str:
    """Return the final component of ``path``, or ``path`` itself for a root."""
    return os.path.basename(path) or path


def extension_of(name: str) -> Optional[str]:
    """Return the lowercase suffix of ``name`` without the dot, or None."""
    suffix = os.path.splitext(name)[1]
    if len(suffix) <= 1:
        return None
    return suffix[1:].lower()


class Entry(BaseModel):
    """
    Immutable description of one filesystem node.

    Attributes:
        path: Absolute, normalized path (identity key)
        name: Final component of ``path``
        extension: Lowercase suffix without the dot; None for directories and
            extensionless files
        size: Size in bytes; always 0 for directories
        modified: Modification time in whole seconds since the epoch
        is_directory: True iff the OS reports a directory (symlinks followed)
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., min_length=1, description="Absolute path of the entry")
    name: str = Field(..., min_length=1, description="Final path component")
    extension: Optional[str] = Field(None, description="Lowercase suffix without the dot")
    size: int = Field(0, ge=0, description="Size in bytes")
    modified: int = Field(0, ge=0, description="Modification time (epoch seconds)")
    is_directory: bool = Field(False, description="Whether the entry is a directory")

    @field_validator('extension')
    @classmethod
    def validate_extension(cls, v: Optional[str]) -> Optional[str]:
        """Normalize extension to lowercase without a leading dot."""
        if v is None:
            return v
        v = v.strip().lstrip('.').lower()
        return v or None

    @model_validator(mode='after')
    def validate_entry(self):
        """Validate consistency between path, name, extension and type."""
        if self.name != entry_name(self.path):
            raise ValueError(f"Name '{self.name}' is not the last component of '{self.path}'")

        if self.is_directory:
            if self.extension is not None:
                raise ValueError("Directories cannot have an extension")
            if self.size != 0:
                raise ValueError("Directories must report a size of zero")
        elif self.extension is not None and self.extension != extension_of(self.name):
            raise ValueError(f"Extension '{self.extension}' does not match name '{self.name}'")

        return self

    @classmethod
    def from_path(cls, path: str, stat_result: Optional[os.stat_result] = None) -> 'Entry':
        """
        Build an entry from OS metadata.

        Symlinks are followed, so a link to a directory is a directory and a
        dangling link cannot be described.

        Args:
            path: Path of the node
            stat_result: Already-fetched ``os.stat`` result, if available

        Returns:
            Entry describing the node

        Raises:
            StatError: If the node's metadata cannot be read
        """
        path = normalize_path(path)
        if stat_result is None:
            try:
                stat_result = os.stat(path)
            except OSError as e:
                raise StatError(path, e.strerror or str(e)) from e

        name = entry_name(path)
        is_directory = stat.S_ISDIR(stat_result.st_mode)

        try:
            return cls(
                path=path,
                name=name,
                extension=None if is_directory else extension_of(name),
                size=0 if is_directory else stat_result.st_size,
                modified=max(int(stat_result.st_mtime), 0),
                is_directory=is_directory,
            )
        except ValidationError as e:
            # Names that are not valid UTF-8 arrive surrogate-escaped and are rejected here.
            raise StatError(path, f"Cannot describe entry: {e.error_count()} invalid field(s)") from e

    def get_parent(self) -> str:
        """Get the directory containing this entry."""
        return os.path.dirname(self.path)

    def get_modified_datetime(self) -> datetime:
        """Get the modification time as a local datetime."""
        return datetime.fromtimestamp(self.modified)

    def get_size_human_readable(self) -> str:
        """Get size in human-readable format."""
        size = float(self.size)
        for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
            if size < 1024.0:
                return f"{size:.1f} {unit}"
            size /= 1024.0
        return f"{size:.1f} PB"

    def to_dict(self) -> Dict[str, Any]:
        """Convert entry to dictionary representation."""
        return self.model_dump()

    def __str__(self) -> str:
        kind = "dir" if self.is_directory else (self.extension or "file")
        return f"{self.name} ({kind}, {self.get_size_human_readable()})"


def listing_sort_key(entry: Entry) -> Tuple[bool, str, str, str]:
    """Sort key placing directories first, then names case-insensitively."""
    return (not entry.is_directory, entry.name.casefold(), entry.name, entry.path)


def sort_entries(entries: Sequence[Entry]) -> List[Entry]:
    """Return ``entries`` in listing order."""
    return sorted(entries, key=listing_sort_key)


@dataclass(frozen=True)
class DirectoryListing:
    """
    Ordered direct children of one directory.

    Attributes:
        parent: Normalized path of the listed directory
        entries: Children sorted with ``listing_sort_key``
        skipped: Number of children dropped because they could not be stat'ed
        listed_at: Monotonic time the listing was read from disk
    """

    parent: str
    entries: Tuple[Entry, ...] = ()
    skipped: int = field(default=0, compare=False)
    listed_at: float = field(default_factory=time.monotonic, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'entries', tuple(sort_entries(self.entries)))

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(self.entries)

    def __getitem__(self, index: int) -> Entry:
        return self.entries[index]

    def directories(self) -> List[Entry]:
        return [e for e in self.entries if e.is_directory]

    def files(self) -> List[Entry]:
        return [e for e in self.entries if not e.is_directory]

    def to_list(self) -> List[Entry]:
        return list(self.entries)
