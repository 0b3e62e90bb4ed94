"""Tests for the live-reload notifier."""

import asyncio

import pytest
import pytest_asyncio
import websockets

from greact.notifier import REFRESH_MESSAGE, ConnectionRegistry, LiveReloadNotifier


@pytest_asyncio.fixture
async def notifier():
    notifier = LiveReloadNotifier("127.0.0.1", 0)
    await notifier.start()
    yield notifier
    await notifier.stop()


class TestConnectionRegistry:
    """Tests for ConnectionRegistry."""

    def test_add_discard_snapshot(self):
        registry = ConnectionRegistry()
        a, b = object(), object()

        registry.add(a)
        registry.add(b)
        registry.add(a)
        assert len(registry) == 2
        assert set(registry.snapshot()) == {a, b}

        registry.discard(a)
        registry.discard(a)
        assert registry.snapshot() == [b]

    def test_snapshot_is_a_copy(self):
        registry = ConnectionRegistry()
        registry.add("conn")
        snapshot = registry.snapshot()
        registry.discard("conn")
        assert snapshot == ["conn"]
        assert len(registry) == 0


class TestLiveReloadNotifier:
    """Tests for LiveReloadNotifier against a real websocket client."""

    @pytest.mark.asyncio
    async def test_broadcast_without_clients_is_dropped(self, notifier):
        assert await notifier.broadcast() == 0

    @pytest.mark.asyncio
    async def test_client_receives_refresh(self, notifier, wait_until):
        async with websockets.connect(notifier.url) as ws:
            assert await wait_until(lambda: len(notifier.connections) == 1)

            assert await notifier.broadcast() == 1
            assert await asyncio.wait_for(ws.recv(), 2.0) == REFRESH_MESSAGE

    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_client(self, notifier, wait_until):
        async with websockets.connect(notifier.url) as first, websockets.connect(notifier.url) as second:
            assert await wait_until(lambda: len(notifier.connections) == 2)

            assert await notifier.broadcast() == 2
            assert await asyncio.wait_for(first.recv(), 2.0) == "refresh"
            assert await asyncio.wait_for(second.recv(), 2.0) == "refresh"

    @pytest.mark.asyncio
    async def test_dropped_signal_not_delivered_later(self, notifier, wait_until):
        assert await notifier.broadcast() == 0

        async with websockets.connect(notifier.url) as ws:
            assert await wait_until(lambda: len(notifier.connections) == 1)
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(ws.recv(), 0.3)

    @pytest.mark.asyncio
    async def test_inbound_messages_ignored(self, notifier, wait_until):
        async with websockets.connect(notifier.url) as ws:
            assert await wait_until(lambda: len(notifier.connections) == 1)
            await ws.send("hello")
            await ws.send("reload please")
            await asyncio.sleep(0.1)

            assert len(notifier.connections) == 1
            await notifier.broadcast()
            assert await asyncio.wait_for(ws.recv(), 2.0) == "refresh"

    @pytest.mark.asyncio
    async def test_disconnect_unregisters(self, notifier, wait_until):
        async with websockets.connect(notifier.url) as ws:
            assert await wait_until(lambda: len(notifier.connections) == 1)
            await ws.close()

        assert await wait_until(lambda: len(notifier.connections) == 0)
        assert await notifier.broadcast() == 0

    @pytest.mark.asyncio
    async def test_one_bad_connection_does_not_block_others(self, notifier, wait_until):
        class _Broken:
            async def send(self, message):
                raise ConnectionError("gone")

        async with websockets.connect(notifier.url) as ws:
            assert await wait_until(lambda: len(notifier.connections) == 1)
            broken = _Broken()
            notifier.connections.add(broken)

            assert await notifier.broadcast() == 1
            assert await asyncio.wait_for(ws.recv(), 2.0) == "refresh"
            assert broken not in notifier.connections.snapshot()

    @pytest.mark.asyncio
    async def test_other_paths_closed_with_policy_violation(self, notifier):
        url = f"ws://127.0.0.1:{notifier.port}/other"

        async with websockets.connect(url) as ws:
            with pytest.raises(websockets.ConnectionClosed) as exc_info:
                await asyncio.wait_for(ws.recv(), 2.0)

        assert exc_info.value.rcvd.code == 1008
        assert len(notifier.connections) == 0
        assert await notifier.broadcast() == 0

    @pytest.mark.asyncio
    async def test_port_and_url(self, notifier):
        assert notifier.port > 0
        assert notifier.url == f"ws://127.0.0.1:{notifier.port}/ws"

    @pytest.mark.asyncio
    async def test_stop_closes_clients(self, wait_until):
        notifier = LiveReloadNotifier("127.0.0.1", 0)
        await notifier.start()
        ws = await websockets.connect(notifier.url)
        assert await wait_until(lambda: len(notifier.connections) == 1)

        await notifier.stop()

        with pytest.raises(websockets.ConnectionClosed):
            await asyncio.wait_for(ws.recv(), 2.0)
        assert await wait_until(lambda: len(notifier.connections) == 0)
