# This file is part of nxpresence.
#
# nxpresence is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# nxpresence is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public License
# along with nxpresence.  If not, see <http://www.gnu.org/licenses/>.

"""
Locating and opening the local Discord IPC channel.

On Windows the channel is a named pipe, everywhere else it is a unix domain socket in the
runtime directory.

.. currentmodule:: nxpresence.ipc.channel
"""
import os
import platform
import sys
from pathlib import PurePath

import trio

if sys.platform == "win32":
    import ctypes
    from ctypes import wintypes

    _kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
    _kernel32.CreateFileW.argtypes = (
        wintypes.LPCWSTR, wintypes.DWORD, wintypes.DWORD, wintypes.LPVOID,
        wintypes.DWORD, wintypes.DWORD, wintypes.HANDLE,
    )
    _kernel32.CreateFileW.restype = wintypes.HANDLE
    _kernel32.CloseHandle.argtypes = (wintypes.HANDLE,)
    _kernel32.CloseHandle.restype = wintypes.BOOL

    _GENERIC_READ = 0x80000000
    _GENERIC_WRITE = 0x40000000
    _OPEN_EXISTING = 3
    _FILE_FLAG_OVERLAPPED = 0x40000000
    _INVALID_HANDLE_VALUE = wintypes.HANDLE(-1).value

#: The number of channel slots tried when connecting.
SLOT_COUNT = 10

#: The base name of the channel.
CHANNEL_BASE = "discord-ipc"


def get_ipc_url(slot: int = 0) -> str:
    """
    Gets the IPC path for Discord.

    :param slot: The channel slot, between 0 and 9.
    """
    name = "{}-{}".format(CHANNEL_BASE, slot)
    if platform.system() == "Windows":
        return r"\\?\pipe\{}".format(name)

    for var in ("XDG_RUNTIME_DIR", "TMPDIR", "TMP", "TEMP"):
        base = os.environ.get(var)
        if base:
            break
    else:
        base = "/tmp"

    return str(PurePath(base, name))


class NamedPipeStream(trio.abc.Stream):
    """
    Wraps an overlapped Windows named pipe handle as a trio stream.

    Reads and writes go through trio's IOCP loop, so a pending read never holds up a write on
    the same handle.
    """

    def __init__(self, handle: int):
        self._handle = handle
        trio.lowlevel.register_with_iocp(handle)

    @property
    def closed(self) -> bool:
        return self._handle == -1

    def _check_closed(self):
        if self.closed:
            raise trio.ClosedResourceError("pipe was closed")

    async def send_all(self, data: bytes) -> None:
        self._check_closed()
        if not data:
            await trio.lowlevel.checkpoint()
            return

        try:
            written = await trio.lowlevel.write_overlapped(self._handle, data)
        except BrokenPipeError as e:
            raise trio.BrokenResourceError("pipe was closed by the other end") from e

        if written != len(data):
            raise trio.BrokenResourceError("short write on pipe")

    async def wait_send_all_might_not_block(self) -> None:
        self._check_closed()
        await trio.lowlevel.checkpoint()

    async def receive_some(self, max_bytes: int = None) -> bytes:
        self._check_closed()
        if max_bytes is None:
            max_bytes = 65536

        buffer = bytearray(max_bytes)
        try:
            size = await trio.lowlevel.readinto_overlapped(self._handle, buffer)
        except BrokenPipeError:
            if self.closed:
                raise trio.ClosedResourceError("pipe was closed") from None

            # the other end hung up
            await trio.lowlevel.checkpoint()
            return b""

        return bytes(buffer[:size])

    def close(self) -> None:
        if self.closed:
            return

        handle, self._handle = self._handle, -1
        if not _kernel32.CloseHandle(handle):
            raise ctypes.WinError(ctypes.get_last_error())

    async def aclose(self) -> None:
        self.close()
        await trio.lowlevel.checkpoint()


async def open_named_pipe(path: str) -> NamedPipeStream:
    """
    Opens the client end of a Windows named pipe in overlapped mode.

    :param path: The pipe path, e.g. ``\\\\?\\pipe\\discord-ipc-0``.
    :raises OSError: If the pipe does not exist or all of its instances are busy.
    """
    await trio.lowlevel.checkpoint()

    # CreateFileW fails straight away on a missing or busy pipe, no need for a thread
    handle = _kernel32.CreateFileW(path, _GENERIC_READ | _GENERIC_WRITE, 0, None,
                                   _OPEN_EXISTING, _FILE_FLAG_OVERLAPPED, None)
    if handle is None or handle == _INVALID_HANDLE_VALUE:
        raise ctypes.WinError(ctypes.get_last_error())

    try:
        return NamedPipeStream(handle)
    except BaseException:
        _kernel32.CloseHandle(handle)
        raise


async def open_channel(slot: int) -> trio.abc.Stream:
    """
    Opens the IPC channel in the given slot.

    :param slot: The channel slot to open.
    :raises OSError: If nothing is listening in that slot.
    """
    path = get_ipc_url(slot)

    if platform.system() == "Windows":
        return await open_named_pipe(path)

    return await trio.open_unix_socket(path)
