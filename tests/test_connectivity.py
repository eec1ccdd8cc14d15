import asyncio

import pytest

from mountpro.src.connectivity import ConnectivityMonitor, tcp_probe


def test_listeners_fire_only_on_transitions():
    monitor = ConnectivityMonitor(initial=True)
    seen = []
    monitor.add_listener(seen.append)

    assert not monitor.set_online(True)
    assert monitor.set_online(False)
    assert not monitor.set_online(False)
    assert monitor.set_online(True)
    assert seen == [False, True]


def test_probe_rereads_platform_signal():
    state = {"online": False}
    monitor = ConnectivityMonitor(is_online=lambda: state["online"])
    assert monitor.offline

    state["online"] = True
    assert monitor.probe() is True
    assert monitor.online
    assert ConnectivityMonitor().probe() is True


@pytest.mark.asyncio
async def test_tcp_probe_against_local_server():
    server = await asyncio.start_server(lambda reader, writer: writer.close(), "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        assert await tcp_probe("127.0.0.1", port, timeout=1.0)
    finally:
        server.close()
        await server.wait_closed()
    assert not await tcp_probe("127.0.0.1", port, timeout=1.0)
