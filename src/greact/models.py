"""Shared data models for the greact dev session."""

import fnmatch
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

DEFAULT_IGNORE_PATTERNS = ["*.swp", "*.swx", "*~", ".#*"]


class ChangeKind(Enum):
    """Kind of filesystem change reported by a watcher."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    MOVED = "moved"


@dataclass(frozen=True)
class ChangeEvent:
    """A single filesystem change."""

    path: Path
    """Changed file. For moves this is the destination."""

    kind: ChangeKind

    timestamp: float
    """Wall-clock time the event was observed."""

    @property
    def extension(self) -> str:
        return self.path.suffix


@dataclass
class WatchTarget:
    """A directory to watch plus the filter applied to its events."""

    path: Path
    """Directory to watch."""

    extensions: list[str] | None = None
    """Only events for these file extensions pass (None = all)."""

    ignore_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS))
    """File name globs that never pass (editor swap/backup files)."""

    recursive: bool = False
    """Also watch subdirectories, including ones created later."""

    name: str = ""
    """Label used in log messages."""

    def matches(self, event: ChangeEvent) -> bool:
        """Check if an event passes this target's filters.

        Args:
            event: Event to check

        Returns:
            True if the event should be delivered
        """
        filename = event.path.name
        for pattern in self.ignore_patterns:
            if fnmatch.fnmatch(filename, pattern):
                return False

        if self.extensions is not None and event.extension not in self.extensions:
            return False

        return True

    @property
    def label(self) -> str:
        return self.name or str(self.path)


class ProcessState(Enum):
    """Lifecycle state of the supervised server process."""

    IDLE = "idle"
    BUILDING = "building"
    RUNNING = "running"
    KILLING = "killing"
    TERMINATED = "terminated"
