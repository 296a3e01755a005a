import sys
import uuid

import pytest
import trio
import trio.testing

from nxpresence.ipc import channel
from nxpresence.ipc.channel import get_ipc_url, open_channel

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="unix domain sockets")
windows_only = pytest.mark.skipif(sys.platform != "win32", reason="named pipes")


@posix_only
def test_ipc_url_prefers_runtime_dir(monkeypatch):
    monkeypatch.setenv("XDG_RUNTIME_DIR", "/run/user/1000")
    monkeypatch.setenv("TMPDIR", "/var/tmp")
    assert get_ipc_url(2) == "/run/user/1000/discord-ipc-2"


@posix_only
def test_ipc_url_falls_back_to_tmp(monkeypatch):
    for var in ("XDG_RUNTIME_DIR", "TMPDIR", "TMP", "TEMP"):
        monkeypatch.delenv(var, raising=False)
    assert get_ipc_url() == "/tmp/discord-ipc-0"


@posix_only
@pytest.mark.trio
async def test_open_channel_connects_to_slot(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(tmp_path))

    listener = trio.socket.socket(trio.socket.AF_UNIX, trio.socket.SOCK_STREAM)
    with listener:
        await listener.bind(str(tmp_path / "discord-ipc-3"))
        listener.listen(1)

        stream = await open_channel(3)
        conn, _ = await listener.accept()
        with conn:
            await stream.send_all(b"hi")
            assert await conn.recv(2) == b"hi"
        await stream.aclose()


@posix_only
@pytest.mark.trio
async def test_open_channel_missing_slot(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(tmp_path))
    with pytest.raises(OSError):
        await open_channel(4)


def _create_server_pipe(path):
    import ctypes
    from ctypes import wintypes

    kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
    kernel32.CreateNamedPipeW.argtypes = (
        wintypes.LPCWSTR, wintypes.DWORD, wintypes.DWORD, wintypes.DWORD,
        wintypes.DWORD, wintypes.DWORD, wintypes.DWORD, wintypes.LPVOID,
    )
    kernel32.CreateNamedPipeW.restype = wintypes.HANDLE

    # PIPE_ACCESS_DUPLEX | FILE_FLAG_OVERLAPPED, byte mode, one instance
    handle = kernel32.CreateNamedPipeW(path, 0x00000003 | 0x40000000, 0, 1,
                                       65536, 65536, 0, None)
    if handle is None or handle == wintypes.HANDLE(-1).value:
        raise ctypes.WinError(ctypes.get_last_error())
    return handle


@windows_only
@pytest.mark.trio
async def test_named_pipe_writes_while_read_pending():
    path = r"\\.\pipe\nxpresence-test-{}".format(uuid.uuid4().hex)
    server = channel.NamedPipeStream(_create_server_pipe(path))
    client = await channel.open_named_pipe(path)

    received = []

    async def reader():
        received.append(await client.receive_some())

    async with client, server:
        async with trio.open_nursery() as nursery:
            nursery.start_soon(reader)
            await trio.testing.wait_all_tasks_blocked()

            with trio.fail_after(5):
                await client.send_all(b"ping")
                assert await server.receive_some() == b"ping"
                await server.send_all(b"pong")

    assert received == [b"pong"]


@windows_only
@pytest.mark.trio
async def test_named_pipe_missing():
    with pytest.raises(OSError):
        await channel.open_named_pipe(r"\\.\pipe\nxpresence-missing-{}".format(uuid.uuid4().hex))
