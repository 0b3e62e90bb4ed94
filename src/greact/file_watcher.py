"""Directory watcher implementation using watchdog."""

import asyncio
import logging
import time
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from greact.models import ChangeEvent, ChangeKind, WatchTarget

logger = logging.getLogger(__name__)


class WatchError(RuntimeError):
    """A watch could not be established."""


class _ForwardingHandler(FileSystemEventHandler):
    """Filter watchdog events and hand them to the event loop."""

    def __init__(self, target: WatchTarget, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue):
        """Initialize handler.

        Args:
            target: Watch target whose filters apply
            loop: Event loop owning the queue
            queue: Queue receiving ChangeEvents
        """
        self.target = target
        self.loop = loop
        self.queue = queue

    def _forward(self, path: str, kind: ChangeKind) -> None:
        change = ChangeEvent(path=Path(path), kind=kind, timestamp=time.time())
        if not self.target.matches(change):
            return

        logger.debug(f"[{self.target.label}] {kind.value}: {change.path}")
        try:
            self.loop.call_soon_threadsafe(self.queue.put_nowait, change)
        except RuntimeError:
            # Loop already closed during shutdown
            logger.debug(f"[{self.target.label}] dropped event after loop closed: {change.path}")

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path, ChangeKind.CREATED)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path, ChangeKind.MODIFIED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path, ChangeKind.DELETED)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.dest_path, ChangeKind.MOVED)


class DirectoryWatcher:
    """Watches one directory and yields its ChangeEvents in discovery order.

    Usage:
        watcher = DirectoryWatcher(target, loop)
        watcher.start()
        async for event in watcher:
            ...
        watcher.stop()
    """

    def __init__(self, target: WatchTarget, loop: asyncio.AbstractEventLoop):
        """Initialize watcher.

        Args:
            target: Directory and filters to watch
            loop: Running event loop the events are delivered to
        """
        self.target = target
        self.loop = loop
        self.observer = Observer()
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self._handler = _ForwardingHandler(target, loop, self._queue)

    def start(self) -> None:
        """Establish the watch.

        Raises:
            WatchError: If the directory cannot be watched
        """
        path = self.target.path
        if not path.is_dir():
            raise WatchError(f"Cannot watch {path}: not an existing directory")

        try:
            self.observer.schedule(self._handler, str(path), recursive=self.target.recursive)
            self.observer.start()
        except OSError as e:
            raise WatchError(f"Cannot watch {path}: {e}") from e

        mode = "recursive" if self.target.recursive else "flat"
        logger.info(f"Watching {path} ({self.target.label}, {mode})")

    def stop(self) -> None:
        """Stop the observer thread."""
        if self.observer.is_alive():
            self.observer.stop()
            self.observer.join(timeout=2.0)
            logger.debug(f"Stopped watching {self.target.path}")

    async def next_event(self) -> ChangeEvent:
        """Wait for the next matching event."""
        return await self._queue.get()

    def drain(self) -> list[ChangeEvent]:
        """Return the events already queued, without waiting."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return events

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        return await self.next_event()
