"""Tests for the process supervisor, using real child processes."""

import sys

import pytest
from conftest import BUILD_FAIL, BUILD_OK, event_lines

from greact.models import ProcessState
from greact.supervisor import ProcessSupervisor

IGNORE_TERM_SCRIPT = """\
import signal, time
signal.signal(signal.SIGTERM, signal.SIG_IGN)
open("ready", "w").close()
while True:
    time.sleep(0.05)
"""


@pytest.fixture
def supervisor(server_dir):
    return ProcessSupervisor(
        build_command=BUILD_OK,
        run_command=[sys.executable, "server.py"],
        artifact=server_dir / "app",
        cwd=server_dir,
        kill_timeout=5.0,
    )


def _started(server_dir, count=1):
    return lambda: sum(line.startswith("start") for line in event_lines(server_dir)) >= count


class TestRestart:
    """Tests for the build → kill → start sequence."""

    @pytest.mark.asyncio
    async def test_first_restart_builds_and_starts(self, supervisor, server_dir, wait_until):
        try:
            assert await supervisor.restart() is True

            assert supervisor.state is ProcessState.RUNNING
            assert supervisor.is_running
            assert (server_dir / "app").read_text() == "built"
            assert await wait_until(_started(server_dir))
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_old_instance_terminated_before_new_starts(self, supervisor, server_dir, wait_until):
        try:
            await supervisor.restart()
            first = supervisor.process
            assert await wait_until(_started(server_dir))

            await supervisor.restart()
            second = supervisor.process
            assert await wait_until(_started(server_dir, 2))

            assert first.returncode is not None
            assert second is not first
            assert event_lines(server_dir) == [
                f"start {first.pid}",
                f"term {first.pid}",
                f"start {second.pid}",
            ]
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_never_two_running_instances(self, supervisor, server_dir, wait_until):
        """Every time a child reaches RUNNING, the previous one has already exited."""
        children = []
        violations = []

        def on_transition(old, new):
            if new is ProcessState.RUNNING:
                if children and children[-1].returncode is None:
                    violations.append(children[-1].pid)
                children.append(supervisor.process)

        supervisor.add_listener(on_transition)
        try:
            for count in range(1, 4):
                await supervisor.restart()
                assert await wait_until(_started(server_dir, count))
        finally:
            await supervisor.shutdown()

        assert len(children) == 3
        assert violations == []

    @pytest.mark.asyncio
    async def test_state_sequence(self, supervisor, server_dir, wait_until):
        transitions = []
        supervisor.add_listener(lambda old, new: transitions.append(new))
        try:
            await supervisor.restart()
            assert await wait_until(_started(server_dir))
            await supervisor.restart()
        finally:
            await supervisor.shutdown()

        assert transitions == [
            ProcessState.BUILDING,
            ProcessState.RUNNING,
            ProcessState.BUILDING,
            ProcessState.KILLING,
            ProcessState.IDLE,
            ProcessState.RUNNING,
            ProcessState.KILLING,
            ProcessState.TERMINATED,
        ]

    @pytest.mark.asyncio
    async def test_failed_build_keeps_running_instance(self, supervisor, server_dir, wait_until, caplog):
        try:
            await supervisor.restart()
            running = supervisor.process
            assert await wait_until(_started(server_dir))

            supervisor.build_command = BUILD_FAIL
            assert await supervisor.restart() is False

            assert supervisor.process is running
            assert running.returncode is None
            assert supervisor.state is ProcessState.RUNNING
            assert "error building server" in caplog.text
            assert not any(line.startswith("term") for line in event_lines(server_dir))
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_failed_first_build_stays_idle(self, supervisor):
        supervisor.build_command = BUILD_FAIL

        assert await supervisor.restart() is False
        assert supervisor.state is ProcessState.IDLE
        assert supervisor.process is None

    @pytest.mark.asyncio
    async def test_missing_build_tool_is_logged(self, supervisor, caplog):
        supervisor.build_command = ["definitely-not-a-compiler-xyz"]

        assert await supervisor.restart() is False
        assert supervisor.state is ProcessState.IDLE
        assert "error building server" in caplog.text

    @pytest.mark.asyncio
    async def test_start_failure_recovers_on_next_restart(self, supervisor, server_dir, wait_until, caplog):
        supervisor.run_command = [str(server_dir / "no-such-binary")]
        try:
            assert await supervisor.restart() is False
            assert supervisor.state is ProcessState.IDLE
            assert "error starting server" in caplog.text

            supervisor.run_command = [sys.executable, "server.py"]
            assert await supervisor.restart() is True
            assert supervisor.state is ProcessState.RUNNING
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_unexpected_exit_goes_idle(self, supervisor, wait_until, caplog):
        supervisor.run_command = [sys.executable, "-c", "import sys; sys.exit(3)"]
        try:
            await supervisor.restart()
            assert await wait_until(lambda: supervisor.state is ProcessState.IDLE)
            assert supervisor.process is None
            assert "server exited with status 3" in caplog.text
        finally:
            await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_sigkill_after_timeout(self, server_dir, wait_until):
        (server_dir / "stubborn.py").write_text(IGNORE_TERM_SCRIPT)
        supervisor = ProcessSupervisor(
            build_command=BUILD_OK,
            run_command=[sys.executable, "stubborn.py"],
            artifact=server_dir / "app",
            cwd=server_dir,
            kill_timeout=0.3,
        )
        await supervisor.restart()
        process = supervisor.process
        assert await wait_until(lambda: (server_dir / "ready").exists())

        await supervisor.shutdown()

        assert process.returncode == -9


class TestShutdown:
    """Tests for shutdown."""

    @pytest.mark.asyncio
    async def test_shutdown_kills_and_removes_artifact(self, supervisor, server_dir, wait_until):
        await supervisor.restart()
        process = supervisor.process
        assert await wait_until(_started(server_dir))

        await supervisor.shutdown()

        assert process.returncode is not None
        assert not (server_dir / "app").exists()
        assert supervisor.state is ProcessState.TERMINATED
        assert supervisor.process is None

    @pytest.mark.asyncio
    async def test_restart_after_shutdown_is_noop(self, supervisor, server_dir):
        await supervisor.shutdown()

        assert await supervisor.restart() is False
        assert supervisor.process is None
        assert not (server_dir / "app").exists()

    @pytest.mark.asyncio
    async def test_shutdown_without_process_or_artifact(self, supervisor):
        await supervisor.shutdown()
        assert supervisor.state is ProcessState.TERMINATED

    @pytest.mark.asyncio
    async def test_wait_returns_exit_status(self, supervisor):
        supervisor.run_command = [sys.executable, "-c", "import sys; sys.exit(4)"]
        try:
            await supervisor.restart()
            assert await supervisor.wait() == 4
        finally:
            await supervisor.shutdown()


def test_from_config(project):
    supervisor = ProcessSupervisor.from_config(project.server)

    assert supervisor.build_command == BUILD_OK
    assert supervisor.artifact == project.server.source_dir / "app"
    assert supervisor.cwd == project.server.source_dir
    assert supervisor.state is ProcessState.IDLE
