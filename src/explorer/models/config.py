"""
Configuration data models for the filesystem explorer engine.

This module defines the settings for the roots to index, gitignore-style
ignore patterns, the directory cache, the scan worker pool, the file opener
and logging.
"""

import os
import re
import string
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


# Locations skipped by the indexer unless configured otherwise.
DEFAULT_IGNORE_PATTERNS = [
    "CloudStore/",
    "OneDrive/",
    "System Volume Information/",
]

LOG_LEVELS = ["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]


def default_volume_roots() -> List[str]:
    """
    Get the OS-provided volume roots.

    Returns:
        Existing drive roots on Windows, the filesystem root elsewhere
    """
    if sys.platform.startswith('win'):
        roots = [f"{letter}:\\" for letter in string.ascii_uppercase if os.path.exists(f"{letter}:\\")]
        return roots or [os.path.abspath(os.sep)]
    return [os.sep]


class CacheConfig(BaseModel):
    """
    Configuration for the directory listing cache.

    Attributes:
        ttl_seconds: How long a cached listing stays valid
        max_entries: Number of listings kept before least-recently-used eviction
    """

    ttl_seconds: float = Field(30.0, ge=0.0, description="Listing time-to-live in seconds")
    max_entries: int = Field(256, gt=0, description="Maximum number of cached listings")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


class ScanConfig(BaseModel):
    """
    Configuration for background index scans.

    Attributes:
        max_workers: Size of the scan worker pool
        initial_wait_seconds: How long the first search may wait for an initial scan
        auto_start: Whether the first search starts indexing the configured roots
    """

    max_workers: int = Field(2, gt=0, le=16, description="Scan worker pool size")
    initial_wait_seconds: float = Field(0.0, ge=0.0, description="Bounded wait for the initial scan")
    auto_start: bool = Field(True, description="Start indexing on first search")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


class SearchConfig(BaseModel):
    """
    Configuration for search requests.

    Attributes:
        max_results: Default cap on returned entries (None for unlimited)
    """

    max_results: Optional[int] = Field(None, gt=0, description="Default maximum number of results")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


class OpenerConfig(BaseModel):
    """
    Configuration for handing paths to the OS default application.

    Attributes:
        backends: Launcher commands tried in order on Linux and other Unixes
        launch_timeout: Seconds to wait for a launcher to report an early failure
    """

    backends: List[str] = Field(
        default_factory=lambda: ["xdg-open", "gio", "kde-open5"],
        description="Launcher commands tried in order"
    )
    launch_timeout: float = Field(2.0, ge=0.0, description="Seconds to wait for launcher failure")

    @field_validator('backends')
    @classmethod
    def validate_backends(cls, v: List[str]) -> List[str]:
        """Drop blank entries and require at least one launcher."""
        backends = [b.strip() for b in v if b and b.strip()]
        if not backends:
            raise ValueError("At least one opener backend must be specified")
        return backends

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


class LoggingConfig(BaseModel):
    """
    Configuration for application logging.

    Attributes:
        level: Log level name
        format: Log record format string
    """

    level: str = Field("INFO", description="Log level name")
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log record format"
    )

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level '{v}'. Must be one of: {LOG_LEVELS}")
        return level

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


class ExplorerConfig(BaseModel):
    """
    Main configuration class for the filesystem explorer engine.

    Attributes:
        roots: Root directories to index (OS volume roots by default)
        ignore: Gitignore-style patterns excluded from the index
        cache: Directory cache settings
        scan: Index scan settings
        search: Search settings
        opener: File opener settings
        logging: Logging settings
    """

    roots: List[str] = Field(default_factory=default_volume_roots, description="Root directories to index")
    ignore: List[str] = Field(
        default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS),
        description="Gitignore-style patterns excluded from the index"
    )
    cache: CacheConfig = Field(default_factory=CacheConfig, description="Directory cache settings")
    scan: ScanConfig = Field(default_factory=ScanConfig, description="Index scan settings")
    search: SearchConfig = Field(default_factory=SearchConfig, description="Search settings")
    opener: OpenerConfig = Field(default_factory=OpenerConfig, description="File opener settings")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging settings")

    def model_post_init(self, __context) -> None:
        """Normalize roots and compile ignore patterns."""
        self._normalize_roots()
        self._normalize_ignore_patterns()
        self._compile_ignore_patterns()

    def _normalize_roots(self) -> None:
        """Expand, absolutize and de-duplicate root directories."""
        normalized_roots = []
        for root in self.roots:
            if not root or not root.strip():
                continue
            root_path = os.path.abspath(os.path.expanduser(root.strip()))
            if root_path not in normalized_roots:
                normalized_roots.append(root_path)

        if not normalized_roots:
            raise ValueError("At least one root directory must be specified")

        self.roots = normalized_roots

    def _normalize_ignore_patterns(self) -> None:
        """Strip comments and blanks; anchor unrooted patterns anywhere in the tree."""
        normalized_patterns = []
        for pattern in self.ignore:
            pattern = (pattern or "").strip()
            if not pattern or pattern.startswith('#'):
                continue

            negated = pattern.startswith('!')
            body = pattern[1:] if negated else pattern
            if not body:
                continue
            if not (body.startswith('**/') or body.startswith('/')):
                body = '**/' + body
            normalized_patterns.append(('!' if negated else '') + body)

        self.ignore = normalized_patterns

    def _compile_ignore_patterns(self) -> None:
        """Compile ignore patterns for efficient matching."""
        self._compiled_ignore_patterns = []
        for pattern in self.ignore:
            is_negation = pattern.startswith('!')
            try:
                regex = re.compile(self._gitignore_to_regex(pattern[1:] if is_negation else pattern))
            except re.error as e:
                raise ValueError(f"Invalid ignore pattern '{pattern}': {e}")
            self._compiled_ignore_patterns.append({
                'regex': regex,
                'is_negation': is_negation,
                'original': pattern,
            })

    @staticmethod
    def _gitignore_to_regex(pattern: str) -> str:
        """
        Convert a gitignore-style pattern to a regex over POSIX-style paths.

        Supports ``*``, ``?``, character classes, ``**`` directory wildcards,
        directory-only patterns (trailing ``/``) and rooted patterns (leading
        ``/``). A matching directory also matches everything beneath it.

        Args:
            pattern: Gitignore-style pattern (without negation prefix)

        Returns:
            Regex pattern string
        """
        is_rooted = pattern.startswith('/')
        body = pattern.strip('/')
        if not body:
            return r'(?!)'

        segments = body.split('/')
        regex_parts = []
        for i, segment in enumerate(segments):
            is_last = i == len(segments) - 1
            if segment == '**':
                # Zero or more whole directories; trailing ** means "anything below".
                regex_parts.append('.*' if is_last else '(?:[^/]+/)*')
                continue
            inner = ExplorerConfig._segment_to_regex(segment)
            regex_parts.append(inner if is_last else inner + '/')

        prefix = '^' if is_rooted else '(?:^|/)'
        return prefix + ''.join(regex_parts) + '(?:/.*)?$'

    @staticmethod
    def _segment_to_regex(segment: str) -> str:
        """Translate one path segment's wildcards; ``*`` and ``?`` never cross '/'."""
        out = []
        i = 0
        while i < len(segment):
            c = segment[i]
            if c == '*':
                out.append('[^/]*')
            elif c == '?':
                out.append('[^/]')
            elif c == '[' and ']' in segment[i + 2:]:
                end = segment.index(']', i + 2)
                content = segment[i + 1:end].replace('\\', '\\\\')
                if content.startswith('!'):
                    content = '^' + content[1:]
                out.append(f'[{content}]')
                i = end
            else:
                out.append(re.escape(c))
            i += 1
        return ''.join(out)

    def should_ignore(self, path: str) -> bool:
        """
        Check if a path should be excluded from the index.

        Patterns are applied in order; a later negation pattern (``!``)
        re-includes a path an earlier pattern excluded.

        Args:
            path: File or directory path to check

        Returns:
            True if the path should be ignored
        """
        if not self._compiled_ignore_patterns:
            return False

        normalized_path = Path(path).as_posix().replace('\\', '/').lstrip('/')

        ignored = False
        for pattern_info in self._compiled_ignore_patterns:
            if pattern_info['regex'].search(normalized_path):
                ignored = not pattern_info['is_negation']
        return ignored

    def is_root_accessible(self, root: str) -> bool:
        """Check if a root directory exists and can be listed."""
        return os.path.isdir(root) and os.access(root, os.R_OK | os.X_OK)

    def get_accessible_roots(self) -> List[str]:
        return [root for root in self.roots if self.is_root_accessible(root)]

    def get_inaccessible_roots(self) -> List[str]:
        return [root for root in self.roots if not self.is_root_accessible(root)]

    def get_root_for(self, path: str) -> Optional[str]:
        """Return the most specific configured root containing ``path``, if any."""
        target = os.path.abspath(path)
        best = None
        for root in self.roots:
            try:
                inside = os.path.commonpath([root, target]) == root
            except ValueError:
                # Different drives on Windows.
                continue
            if inside and (best is None or len(root) > len(best)):
                best = root
        return best

    def validate_configuration(self) -> List[str]:
        """Validate the complete configuration and return any warnings."""
        warnings = []

        inaccessible = self.get_inaccessible_roots()
        if inaccessible:
            warnings.append(f"Inaccessible root directories: {', '.join(inaccessible)}")

        for i, root in enumerate(self.roots):
            for other in self.roots[i + 1:]:
                try:
                    common = os.path.commonpath([root, other])
                except ValueError:
                    continue
                if common in (root, other):
                    warnings.append(f"Overlapping root directories: {root} and {other}")

        if self.cache.ttl_seconds == 0:
            warnings.append("Directory cache TTL is zero; every listing will hit the disk")

        return warnings

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary representation."""
        return {
            'roots': list(self.roots),
            'ignore': list(self.ignore),
            'cache': self.cache.to_dict(),
            'scan': self.scan.to_dict(),
            'search': self.search.to_dict(),
            'opener': self.opener.to_dict(),
            'logging': self.logging.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExplorerConfig':
        """Create configuration from dictionary representation."""
        return cls.model_validate(data)

    def __str__(self) -> str:
        parts = [f"Roots: {len(self.roots)} directories"]
        parts.append(f"Ignore patterns: {len(self.ignore)}")
        parts.append(f"Cache: {self.cache.max_entries} listings / {self.cache.ttl_seconds:g}s")
        parts.append(f"Scan workers: {self.scan.max_workers}")
        return " | ".join(parts)
