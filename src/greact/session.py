"""Dev session coordinator.

Wires the watchers, debounced triggers, process supervisor and live-reload
notifier together:

- page sources (``.js``) changed → debounced asset rebuild
- asset output changed → debounced ``refresh`` broadcast
- server sources changed → supervisor rebuild/kill/restart

SIGINT/SIGTERM set a stop event; the coordinator then cancels every worker,
kills the server and removes its compiled artifact.
"""

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable, Coroutine

from greact import templates
from greact.builder import AssetBuilder, BuildError
from greact.config import GreactConfig
from greact.debounce import DebouncedTrigger
from greact.file_watcher import DirectoryWatcher
from greact.models import ChangeEvent, WatchTarget
from greact.notifier import LiveReloadNotifier
from greact.supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class SignalStop:
    """Stop event set by SIGINT/SIGTERM (or ``trigger()``) on a running loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.event = asyncio.Event()
        self.received: signal.Signals | None = None
        self._installed: list[signal.Signals] = []

    @property
    def is_set(self) -> bool:
        return self.event.is_set()

    def install(self) -> None:
        for sig in STOP_SIGNALS:
            try:
                self.loop.add_signal_handler(sig, self.trigger, sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                # Windows, or not the main thread
                logger.debug(f"Cannot install handler for {sig.name}: {e}")
            else:
                self._installed.append(sig)

    def remove(self) -> None:
        for sig in self._installed:
            self.loop.remove_signal_handler(sig)
        self._installed.clear()

    def trigger(self, sig: signal.Signals | None = None) -> None:
        """Request a stop. Thread-safe and idempotent."""
        if self.received is None and sig is not None:
            self.received = sig
            logger.debug(f"Received {sig.name}")
        self.loop.call_soon_threadsafe(self.event.set)


async def run_until_stopped(stop: SignalStop, coro: Coroutine):
    """Run ``coro`` until it finishes or ``stop`` is triggered.

    Returns:
        The coroutine's result, or None if it was stopped first
    """
    main = asyncio.create_task(coro)
    stopped = asyncio.create_task(stop.event.wait())
    try:
        await asyncio.wait({main, stopped}, return_when=asyncio.FIRST_COMPLETED)
        if main.done():
            return main.result()
        return None
    finally:
        for task in (main, stopped):
            task.cancel()
        await asyncio.gather(main, stopped, return_exceptions=True)


class DevSession:
    """State and workers of one ``greact dev`` invocation.

    Usage:
        session = DevSession(config)
        await session.run()  # returns after SIGINT/SIGTERM or request_stop()
    """

    def __init__(
        self,
        config: GreactConfig,
        builder: AssetBuilder | None = None,
        supervisor: ProcessSupervisor | None = None,
        notifier: LiveReloadNotifier | None = None,
    ):
        """Initialize session.

        Args:
            config: Project configuration
            builder: Asset builder (default: dev-mode AssetBuilder)
            supervisor: Server supervisor (default: built from config.server)
            notifier: Live-reload endpoint (default: built from config.dev)
        """
        self.config = config
        self.builder = builder or AssetBuilder(config, dev=True)
        self.supervisor = supervisor or ProcessSupervisor.from_config(config.server)
        self.notifier = notifier or LiveReloadNotifier(config.dev.reload_host, config.dev.reload_port)

        self.reload_trigger = DebouncedTrigger(config.dev.debounce_ms, name="live-reload")
        self.rebuild_trigger = DebouncedTrigger(config.dev.debounce_ms, name="asset-rebuild")
        self.watchers: list[DirectoryWatcher] = []

        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop: SignalStop | None = None
        self._background: set[asyncio.Task] = set()

    @property
    def interrupted(self) -> bool:
        return self._stop is not None and self._stop.is_set

    def watch_targets(self) -> list[WatchTarget]:
        """Asset output, page source and server source targets, in that order."""
        client = self.config.client
        server = self.config.server
        recursive = self.config.dev.recursive
        return [
            WatchTarget(client.static_path, recursive=recursive, name="assets"),
            WatchTarget(client.source_path, extensions=[templates.PAGE_EXTENSION], recursive=recursive, name="pages"),
            WatchTarget(server.source_dir, extensions=list(server.extensions), recursive=recursive, name="server"),
        ]

    def request_stop(self) -> None:
        """Stop the session as if interrupted. Safe from any thread."""
        if self._stop is not None:
            self._stop.trigger()

    # ========================================================================
    # Main loop
    # ========================================================================

    async def run(self) -> None:
        """Run the session until interrupted.

        Raises:
            WatchError: If a watched directory cannot be watched
        """
        self._loop = asyncio.get_running_loop()
        self._stop = SignalStop(self._loop)
        self._stop.install()
        try:
            await run_until_stopped(self._stop, self._serve())
        finally:
            await self._teardown()

    async def _serve(self) -> None:
        await self.rebuild_assets()
        await self.notifier.start()
        await self.supervisor.restart()

        # Watchers only start once the first build and launch are done
        for target in self.watch_targets():
            watcher = DirectoryWatcher(target, self._loop)
            self.watchers.append(watcher)
            watcher.start()

        assets, pages, server = self.watchers
        await asyncio.gather(
            self._dispatch(assets, self._on_asset_change),
            self._dispatch(pages, self._on_page_change),
            self._watch_server(server),
        )

    async def _teardown(self) -> None:
        self.reload_trigger.cancel()
        self.rebuild_trigger.cancel()

        for watcher in self.watchers:
            watcher.stop()

        for task in self._background:
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)

        await self.supervisor.shutdown()

        try:
            await self.notifier.stop()
        except Exception as e:
            logger.error(f"error stopping live reload endpoint: {e}")

        if self._stop is not None:
            self._stop.remove()
            if self._stop.is_set:
                logger.info("hope you developed something awesome!")

    # ========================================================================
    # Workers
    # ========================================================================

    async def _dispatch(self, watcher: DirectoryWatcher, handler: Callable[[ChangeEvent], None]) -> None:
        async for event in watcher:
            handler(event)

    async def _watch_server(self, watcher: DirectoryWatcher) -> None:
        async for event in watcher:
            # One restart covers everything already queued
            coalesced = watcher.drain()
            logger.info(f"{event.path.name} changed, restarting server")
            if coalesced:
                logger.debug(f"Coalesced {len(coalesced)} more server change(s)")
            await self.supervisor.restart()

    def _on_asset_change(self, event: ChangeEvent) -> None:
        self.reload_trigger.schedule(lambda: self._call_in_loop(self.notifier.broadcast))

    def _on_page_change(self, event: ChangeEvent) -> None:
        logger.debug(f"Page source {event.kind.value}: {event.path.name}")
        self.rebuild_trigger.schedule(lambda: self._call_in_loop(self.rebuild_assets))

    def _call_in_loop(self, func: Callable[[], Awaitable]) -> None:
        """Start ``func()`` as a task on the session loop (from a timer thread)."""

        def spawn():
            task = asyncio.create_task(func())
            self._background.add(task)
            task.add_done_callback(self._background.discard)

        self._loop.call_soon_threadsafe(spawn)

    async def rebuild_assets(self) -> bool:
        """Run the asset build, logging failures.

        Returns:
            True if the build succeeded
        """
        try:
            await self.builder.build()
        except BuildError as e:
            logger.error(str(e))
            return False
        return True


async def run_server(
    config: GreactConfig,
    builder: AssetBuilder | None = None,
    supervisor: ProcessSupervisor | None = None,
) -> int | None:
    """Build once and run the server in the foreground until interrupted.

    Returns:
        The server's exit status if it exited on its own, None if interrupted

    Raises:
        BuildError: If the pages or the server fail to build
    """
    loop = asyncio.get_running_loop()
    builder = builder or AssetBuilder(config)
    supervisor = supervisor or ProcessSupervisor.from_config(config.server)
    stop = SignalStop(loop)
    stop.install()

    async def serve() -> int | None:
        await builder.build()
        if not await supervisor.restart():
            raise BuildError("server failed to build or start")
        return await supervisor.wait()

    try:
        returncode = await run_until_stopped(stop, serve())
    finally:
        await supervisor.shutdown()
        stop.remove()

    if stop.is_set:
        logger.info("hope you enjoyed the app!")
    return returncode
