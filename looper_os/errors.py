"""Exception types raised by Looper OS.

Every failure the pipeline can hit maps onto one of the classes below.
All of them are terminal for the current run: nothing is retried and
nothing already written is rolled back.  Each error keeps the path and
slot index it relates to (when known) so the operator can diagnose the
problem and re-run with the ``append`` policy.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union


class LooperOSError(Exception):
    """Base class for all Looper OS errors."""

    def __init__(
        self,
        message: str,
        path: Optional[Union[str, Path]] = None,
        slot_index: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.path = Path(path) if path is not None else None
        self.slot_index = slot_index

    def __str__(self) -> str:
        parts = [self.message]
        if self.slot_index is not None:
            parts.append(f"slot={self.slot_index}")
        if self.path is not None:
            parts.append(f"path={self.path}")
        return " | ".join(parts)


class ConfigInvalid(LooperOSError):
    """Unsupported device type, policy value or malformed configuration."""


class InvalidPolicy(ConfigInvalid):
    """An existing-tree, naming or capacity policy value is not recognised."""


class PathUnavailable(LooperOSError):
    """The target root or the source directory cannot be reached."""


class CapacityExceeded(LooperOSError):
    """More eligible source files than slots under a fixed capacity."""


class IOFailure(LooperOSError):
    """Directory creation, file copy or manifest write failed."""


class TemplateError(LooperOSError):
    """A descriptor could not be rendered or written."""
