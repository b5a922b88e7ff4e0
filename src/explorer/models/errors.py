"""
Error taxonomy for the filesystem explorer engine.

Per-entry and per-subtree failures are absorbed by the lister and the index
builder; failures on the exact requested path (a listing, a scan root or an
open request) are raised to the caller as one of the exceptions below.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ExplorerError(Exception):
    """Base exception for errors raised by the explorer engine."""

    error_code = "explorer_error"
    default_message = "An unexpected filesystem error occurred"

    def __init__(self, path: Optional[str] = None, message: Optional[str] = None):
        self.path = path
        self.message = message or self.default_message
        super().__init__(f"{self.message}: {path}" if path else self.message)

    @property
    def kind(self) -> Optional[str]:
        """Machine-readable sub-kind of the error, if any."""
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a dictionary a UI can render."""
        return {
            'error': self.error_code,
            'kind': self.kind,
            'path': self.path,
            'message': self.message,
        }


class StatError(ExplorerError):
    """Raised when metadata for a single entry cannot be read."""

    error_code = "stat_error"
    default_message = "Cannot read entry metadata"


class ConfigurationError(ExplorerError):
    """Raised when configuration parsing or validation fails."""

    error_code = "configuration_error"
    default_message = "Invalid configuration"

    def __init__(self, message: Optional[str] = None, path: Optional[str] = None):
        super().__init__(path, message)


class DirectoryErrorKind(Enum):
    """Reasons a directory listing can fail."""
    NOT_FOUND = "not_found"
    NOT_A_DIRECTORY = "not_a_directory"
    PERMISSION_DENIED = "permission_denied"
    UNREADABLE = "unreadable"


class DirectoryError(ExplorerError):
    """Raised when the requested directory itself cannot be listed."""

    error_code = "directory_error"
    default_message = "Cannot read directory"
    error_kind = DirectoryErrorKind.UNREADABLE

    @property
    def kind(self) -> str:
        return self.error_kind.value


class DirectoryNotFoundError(DirectoryError):
    error_kind = DirectoryErrorKind.NOT_FOUND
    default_message = "Directory does not exist"


class DirectoryNotADirectoryError(DirectoryError):
    error_kind = DirectoryErrorKind.NOT_A_DIRECTORY
    default_message = "Path is not a directory"


class DirectoryPermissionError(DirectoryError):
    error_kind = DirectoryErrorKind.PERMISSION_DENIED
    default_message = "Permission denied"


class ScanFailure(ExplorerError):
    """Stored on a scan handle when the scan root itself is unreachable."""

    error_code = "scan_failure"
    default_message = "Scan root is not accessible"


class OpenErrorKind(Enum):
    """Reasons an open request can fail."""
    NOT_FOUND = "not_found"
    NO_HANDLER_AVAILABLE = "no_handler_available"
    PERMISSION_DENIED = "permission_denied"


class OpenError(ExplorerError):
    """Raised when a path cannot be handed to the OS default application."""

    error_code = "open_error"
    default_message = "Cannot open path"
    error_kind = OpenErrorKind.NO_HANDLER_AVAILABLE

    @property
    def kind(self) -> str:
        return self.error_kind.value


class OpenNotFoundError(OpenError):
    error_kind = OpenErrorKind.NOT_FOUND
    default_message = "Path does not exist"


class NoHandlerAvailableError(OpenError):
    error_kind = OpenErrorKind.NO_HANDLER_AVAILABLE
    default_message = "No application is available to open path"


class OpenPermissionError(OpenError):
    error_kind = OpenErrorKind.PERMISSION_DENIED
    default_message = "Permission denied"


class ScanWarningKind(Enum):
    """Non-fatal conditions recorded while scanning."""
    CYCLE_SKIPPED = "cycle_skipped"
    SUBTREE_INACCESSIBLE = "subtree_inaccessible"


class ScanWarning(BaseModel):
    """
    A non-fatal condition recorded during a scan.

    Attributes:
        kind: What happened
        path: Directory the warning refers to
        message: Human-readable detail
    """

    kind: ScanWarningKind = Field(..., description="Warning kind")
    path: str = Field(..., min_length=1, description="Directory the warning refers to")
    message: str = Field("", description="Human-readable detail")

    def to_dict(self) -> Dict[str, Any]:
        """Convert warning to dictionary representation."""
        data = self.model_dump()
        data['kind'] = self.kind.value
        return data

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.path}" + (f" ({self.message})" if self.message else "")
