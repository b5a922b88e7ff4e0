"""
File opener for the filesystem explorer engine.

Hands a path to the operating system's default application. The opener keeps
no state and never interprets file content; every failure is reported to the
caller as an ``OpenError`` and nothing is retried.
"""

import logging
import os
import shutil
import subprocess
import sys
from typing import List, Optional

from ..models.config import OpenerConfig
from ..models.entry import normalize_path
from ..models.errors import (
    NoHandlerAvailableError,
    OpenError,
    OpenNotFoundError,
    OpenPermissionError,
)


logger = logging.getLogger(__name__)

# Exit status xdg-open uses for "file does not exist".
XDG_OPEN_NOT_FOUND = 2


def launcher_command(backend: str, path: str) -> List[str]:
    """Build the argv that asks ``backend`` to open ``path``."""
    if backend == "gio":
        return ["gio", "open", path]
    if backend.startswith("kioclient"):
        return [backend, "exec", path]
    return [backend, path]


class FileOpener:
    """Dispatches paths to the OS default application."""

    def __init__(self, config: Optional[OpenerConfig] = None, platform: Optional[str] = None):
        """
        Initialize the opener.

        Args:
            config: Launcher order and timeout
            platform: Platform name override (defaults to ``sys.platform``)
        """
        self.config = config or OpenerConfig()
        self.platform = platform or sys.platform

    def open(self, path: str) -> None:
        """
        Open ``path`` with its default application.

        Args:
            path: File or directory to open

        Raises:
            OpenNotFoundError: If ``path`` does not exist
            OpenPermissionError: If ``path`` is not readable or the launcher cannot be run
            NoHandlerAvailableError: If no application can open ``path``
        """
        path = normalize_path(path)
        if not os.path.exists(path):
            raise OpenNotFoundError(path)
        if not os.access(path, os.R_OK):
            raise OpenPermissionError(path)

        if self.platform.startswith("win"):
            self._open_windows(path)
        elif self.platform == "darwin":
            self._launch(["open", path], path)
        else:
            self._launch(self._find_launcher(path), path)

        logger.info(f"Opened {path}")

    def _find_launcher(self, path: str) -> List[str]:
        """Return the argv of the first configured launcher that is installed."""
        for backend in self.config.backends:
            command = launcher_command(backend, path)
            if shutil.which(command[0]):
                return command
        raise NoHandlerAvailableError(
            path, f"No launcher installed (tried {', '.join(self.config.backends)})"
        )

    def _open_windows(self, path: str) -> None:
        startfile = getattr(os, "startfile", None)
        if startfile is None:
            raise NoHandlerAvailableError(path, "os.startfile is not available on this platform")
        try:
            startfile(path)
        except FileNotFoundError as e:
            raise OpenNotFoundError(path) from e
        except PermissionError as e:
            raise OpenPermissionError(path) from e
        except OSError as e:
            raise NoHandlerAvailableError(path, e.strerror or str(e)) from e

    def _launch(self, command: List[str], path: str) -> None:
        """
        Run a launcher detached and map an early failure to an OpenError.

        A launcher still running after ``launch_timeout`` seconds is assumed to
        have handed the file over successfully.
        """
        logger.debug(f"Launching {command}")
        try:
            proc = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except FileNotFoundError as e:
            raise NoHandlerAvailableError(path, f"Launcher not found: {command[0]}") from e
        except PermissionError as e:
            raise OpenPermissionError(path, f"Cannot run launcher {command[0]}") from e
        except OSError as e:
            raise NoHandlerAvailableError(path, e.strerror or str(e)) from e

        try:
            returncode = proc.wait(timeout=self.config.launch_timeout)
        except subprocess.TimeoutExpired:
            logger.debug(f"Launcher {command[0]} still running; assuming success")
            return

        if returncode == 0:
            return
        raise self._error_for_exit(command[0], returncode, path)

    @staticmethod
    def _error_for_exit(launcher: str, returncode: int, path: str) -> OpenError:
        if launcher == "xdg-open" and returncode == XDG_OPEN_NOT_FOUND:
            return OpenNotFoundError(path)
        return NoHandlerAvailableError(path, f"{launcher} exited with status {returncode}")
