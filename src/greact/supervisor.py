"""Process supervisor: build, kill and respawn the compiled server."""

import asyncio
import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from greact.models import ProcessState

logger = logging.getLogger(__name__)

StateListener = Callable[[ProcessState, ProcessState], None]


def _force_kill(process: asyncio.subprocess.Process) -> None:
    """SIGKILL a child without waiting (used when the waiter is cancelled)."""
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        pass


class ProcessSupervisor:
    """Owns at most one running server process.

    ``restart()`` runs build → kill → start as one atomic sequence. A failed
    build never touches the running instance, and a new instance is only
    started after the previous one has exited.

    Usage:
        supervisor = ProcessSupervisor.from_config(config.server)
        await supervisor.restart()
        ...
        await supervisor.shutdown()
    """

    def __init__(
        self,
        build_command: Sequence[str],
        run_command: Sequence[str],
        artifact: Path,
        cwd: Path | None = None,
        kill_timeout: float = 5.0,
    ):
        """Initialize supervisor.

        Args:
            build_command: Command compiling the server into ``artifact``
            run_command: Command launching the compiled server
            artifact: Compiled server path, removed on shutdown
            cwd: Working directory for both commands
            kill_timeout: Seconds to wait after SIGTERM before SIGKILL
        """
        self.build_command = list(build_command)
        self.run_command = list(run_command)
        self.artifact = Path(artifact)
        self.cwd = cwd
        self.kill_timeout = kill_timeout

        self._lock = asyncio.Lock()
        self._process: asyncio.subprocess.Process | None = None
        self._last_started: asyncio.subprocess.Process | None = None
        self._state = ProcessState.IDLE
        self._listeners: list[StateListener] = []
        self._exit_tasks: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, server) -> "ProcessSupervisor":
        """Create a supervisor from a ServerConfig."""
        return cls(
            build_command=server.build_command,
            run_command=server.run_command,
            artifact=server.artifact_path,
            cwd=server.source_dir,
            kill_timeout=server.kill_timeout,
        )

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def process(self) -> asyncio.subprocess.Process | None:
        """The current child process, if one was started and not killed."""
        return self._process

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def add_listener(self, callback: StateListener) -> None:
        """Register callback(old_state, new_state) for every transition."""
        self._listeners.append(callback)

    def _set_state(self, state: ProcessState) -> None:
        old, self._state = self._state, state
        if old is state:
            return
        logger.debug(f"Server {old.value} -> {state.value}")
        for listener in self._listeners:
            try:
                listener(old, state)
            except Exception as e:
                logger.exception(f"Error in supervisor state listener: {e}")

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def restart(self) -> bool:
        """Rebuild the server and replace the running instance.

        Returns:
            True if a fresh instance is running afterwards
        """
        async with self._lock:
            if self._state is ProcessState.TERMINATED:
                return False

            self._set_state(ProcessState.BUILDING)
            if not await self._build():
                self._set_state(ProcessState.RUNNING if self.is_running else ProcessState.IDLE)
                return False

            if self._process is not None:
                self._set_state(ProcessState.KILLING)
                if not await self._kill():
                    self._set_state(ProcessState.RUNNING)
                    return False
                self._set_state(ProcessState.IDLE)

            return await self._start()

    async def shutdown(self) -> None:
        """Kill the current instance and remove the compiled artifact."""
        async with self._lock:
            if self._process is not None:
                self._set_state(ProcessState.KILLING)
                await self._kill()
            self._set_state(ProcessState.TERMINATED)

            try:
                self.artifact.unlink(missing_ok=True)
                logger.debug(f"Removed {self.artifact}")
            except OSError as e:
                logger.error(f"error removing {self.artifact}: {e}")

    async def wait(self) -> int | None:
        """Wait for the most recently started instance to exit and return its status."""
        process = self._last_started
        if process is None:
            return None
        return await process.wait()

    # ========================================================================
    # Steps (called with the lock held)
    # ========================================================================

    async def _build(self) -> bool:
        command = " ".join(self.build_command)
        logger.info(f"building server: {command}")
        try:
            build = await asyncio.create_subprocess_exec(*self.build_command, cwd=self.cwd)
        except OSError as e:
            logger.error(f"error building server: {e}")
            return False

        try:
            returncode = await build.wait()
        except asyncio.CancelledError:
            _force_kill(build)
            raise

        if returncode != 0:
            logger.error(f"error building server: '{command}' exited with status {returncode}")
            return False
        return True

    async def _kill(self) -> bool:
        process = self._process
        if process is None:
            return True

        self._process = None
        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            except OSError as e:
                logger.error(f"error killing server (pid {process.pid}): {e}")
                self._process = process
                return False

            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
            except asyncio.CancelledError:
                _force_kill(process)
                raise
            except asyncio.TimeoutError:
                logger.warning(f"Server (pid {process.pid}) ignored SIGTERM, sending SIGKILL")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        logger.debug(f"Server (pid {process.pid}) exited with status {process.returncode}")
        return True

    async def _start(self) -> bool:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.run_command,
                cwd=self.cwd,
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"error starting server: {e}")
            self._set_state(ProcessState.IDLE)
            return False

        self._process = process
        self._last_started = process
        self._set_state(ProcessState.RUNNING)
        logger.info(f"server started (pid {process.pid})")

        task = asyncio.create_task(self._watch_exit(process))
        self._exit_tasks.add(task)
        task.add_done_callback(self._exit_tasks.discard)
        return True

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        returncode = await process.wait()
        # Only report exits nobody asked for; _kill clears _process first
        if process is not self._process:
            return
        logger.warning(f"server exited with status {returncode}")
        self._process = None
        if self._state is ProcessState.RUNNING:
            self._set_state(ProcessState.IDLE)
