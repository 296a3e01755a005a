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
The client for an IPC connection.

.. currentmodule:: nxpresence.ipc.client
"""
import enum
import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Iterable, Optional

import trio

from nxpresence.dataclasses.activity import ActivityPayload
from nxpresence.exc import IPCProtocolError
from nxpresence.ipc.channel import SLOT_COUNT, open_channel
from nxpresence.ipc.packet import IPCOpcode, IPCPacket, encode_frame, read_frame

logger = logging.getLogger("nxpresence.ipc")

#: Errors that mean the channel is gone. These are never raised out of the client.
CONNECTION_ERRORS = (
    OSError,
    trio.BrokenResourceError,
    trio.ClosedResourceError,
    trio.TooSlowError,
    IPCProtocolError,
)


def get_nonce() -> str:
    """
    Gets a random nonce.
    """
    return str(uuid.uuid4())


class IPCState(enum.Enum):
    """
    The connection state of an :class:`.IPCClient`.
    """

    DISCONNECTED = 0
    CONNECTING = 1
    HANDSHAKING = 2
    CONNECTED = 3


class IPCClient(object):
    """
    Represents an IPC (interprocess communication) client. This connects to the Discord client on
    the IPC channel.

    To use, open a client with your app's client ID:

    .. code-block:: python3

        async with open_ipc_client(323578534763298816) as ipc:
            await ipc.ensure_connected()
            await ipc.publish_activity(payload)

    None of the methods raise on connection errors. If the channel breaks, the client quietly
    drops back to :attr:`.IPCState.DISCONNECTED` and :meth:`.ensure_connected` has to be called
    again.
    """
    VERSION = 1

    #: The timeout for connecting to (and handshaking with) a single channel slot.
    CONNECT_TIMEOUT = 0.5

    #: How long :meth:`.close` waits for the receive loop to finish.
    CLOSE_TIMEOUT = 2

    def __init__(self, client_id: int, nursery: trio.Nursery, *,
                 opener: Callable[[int], Awaitable[trio.abc.Stream]] = open_channel,
                 slots: Iterable[int] = range(SLOT_COUNT)):
        """
        :param client_id: The client ID to authenticate with.
        :param nursery: The nursery the receive loop is started in.
        :param opener: Opens the channel for a slot. Must raise :class:`OSError` if the slot is
            not available.
        :param slots: The slots to try, in order.
        """
        self.client_id = client_id

        #: The current connection state.
        self.state = IPCState.DISCONNECTED

        #: The user object sent with the READY event, if any.
        self.user = None  # type: Optional[dict]

        self._nursery = nursery
        self._opener = opener
        self._slots = tuple(slots)

        self._stream = None  # type: Optional[trio.abc.Stream]
        self._write_lock = trio.Lock()
        self._connect_lock = trio.Lock()
        self._receive_scope = None  # type: Optional[trio.CancelScope]
        self._receive_done = None  # type: Optional[trio.Event]
        self._closed = False

    def __repr__(self) -> str:
        return "<IPCClient client_id={} state={}>".format(self.client_id, self.state.name)

    @property
    def is_connected(self) -> bool:
        return self.state is IPCState.CONNECTED and self._stream is not None

    # Connection management
    async def ensure_connected(self) -> bool:
        """
        Connects to the Discord client, if not already connected.

        Each slot is tried in order; the first one that accepts the handshake is used.

        :return: True if the client is connected, False if no slot could be connected to.
        """
        async with self._connect_lock:
            if self._closed:
                return False

            if self.is_connected:
                return True

            await self._disconnect()

            for slot in self._slots:
                if await self._try_slot(slot):
                    return True

            self.state = IPCState.DISCONNECTED
            logger.debug("No Discord IPC channel available")
            return False

    async def _try_slot(self, slot: int) -> bool:
        self.state = IPCState.CONNECTING
        try:
            with trio.fail_after(self.CONNECT_TIMEOUT):
                stream = await self._opener(slot)
        except CONNECTION_ERRORS as e:
            logger.debug(f"IPC slot {slot} unavailable: {e!r}")
            return False

        self._stream = stream
        self.state = IPCState.HANDSHAKING
        try:
            with trio.fail_after(self.CONNECT_TIMEOUT):
                await self._write(stream, IPCOpcode.HANDSHAKE, self._handshake())
        except CONNECTION_ERRORS as e:
            logger.debug(f"IPC handshake on slot {slot} failed: {e!r}")
            await self._disconnect()
            return False

        self.state = IPCState.CONNECTED
        self._start_receive_loop(stream)
        logger.info(f"Connected to Discord IPC on slot {slot}")
        return True

    async def _disconnect(self) -> None:
        """
        Drops the current connection, if any.
        """
        stream, self._stream = self._stream, None
        self.state = IPCState.DISCONNECTED

        if self._receive_scope is not None:
            self._receive_scope.cancel()
            self._receive_scope = None

        if stream is not None:
            await trio.aclose_forcefully(stream)

    async def close(self) -> None:
        """
        Closes this client. The receive loop is stopped before the channel is closed.
        """
        if self._closed:
            return

        self._closed = True
        done = self._receive_done
        if self._receive_scope is not None:
            self._receive_scope.cancel()

        if done is not None:
            with trio.move_on_after(self.CLOSE_TIMEOUT):
                await done.wait()

        await self._disconnect()
        logger.debug("IPC client closed")

    # Writer methods
    async def _write(self, stream: trio.abc.Stream, opcode: IPCOpcode, payload: bytes) -> None:
        """
        Writes a single frame. Only one frame is ever in flight.
        """
        data = encode_frame(opcode, payload)
        async with self._write_lock:
            await stream.send_all(data)

    async def _send(self, opcode: IPCOpcode, payload: bytes) -> bool:
        """
        Writes a frame to the current connection, disconnecting if that fails.

        :return: True if the frame was written.
        """
        stream = self._stream
        if stream is None:
            return False

        try:
            await self._write(stream, opcode, payload)
        except CONNECTION_ERRORS as e:
            logger.warning(f"IPC write failed, disconnecting: {e!r}")
            if self._stream is stream:
                await self._disconnect()
            return False
        except trio.Cancelled:
            # a frame may have been cut in half
            if self._stream is stream:
                await self._disconnect()
            raise

        return True

    def _handshake(self) -> bytes:
        data = {
            "v": IPCClient.VERSION,
            "client_id": str(self.client_id)
        }
        return IPCPacket(IPCOpcode.HANDSHAKE, data).payload

    def _set_activity(self, activity: Optional[dict]) -> bytes:
        data = {
            "cmd": "SET_ACTIVITY",
            "args": {
                "pid": os.getpid(),
                "activity": activity
            },
            "nonce": get_nonce()
        }
        return IPCPacket(IPCOpcode.FRAME, data).payload

    # Reader methods
    def _start_receive_loop(self, stream: trio.abc.Stream) -> None:
        scope = trio.CancelScope()
        done = trio.Event()
        self._receive_scope, self._receive_done = scope, done
        self._nursery.start_soon(self._receive_loop, stream, scope, done)

    async def _receive_loop(self, stream: trio.abc.Stream, scope: trio.CancelScope,
                            done: trio.Event) -> None:
        """
        Reads frames until the channel closes, answering pings as they come in.
        """
        try:
            with scope:
                while True:
                    opcode, payload = await read_frame(stream)

                    if opcode == IPCOpcode.PING:
                        await self._send(IPCOpcode.PONG, payload)
                    elif opcode == IPCOpcode.FRAME:
                        self._handle_frame(payload)
                    elif opcode == IPCOpcode.CLOSE:
                        logger.info(f"Discord closed the IPC connection: {payload!r}")
                        break
                    else:
                        logger.debug(f"Ignoring IPC frame with opcode {opcode}")
        except CONNECTION_ERRORS as e:
            logger.warning(f"IPC connection lost: {e!r}")
        finally:
            done.set()

        if self._stream is stream:
            await self._disconnect()

    def _handle_frame(self, payload: bytes) -> None:
        packet = IPCPacket(IPCOpcode.FRAME, payload)
        try:
            event = packet.event
        except ValueError:
            logger.warning("Received an IPC frame that is not valid JSON")
            return

        data = packet.data if isinstance(packet.data, dict) else {}
        if event == "READY":
            self.user = data.get("user")
            logger.info("Discord IPC is ready")
        elif event == "ERROR":
            logger.warning(f"Discord returned an error: {data.get('message')}")

    # Convenience methods
    async def publish_activity(self, payload: ActivityPayload) -> bool:
        """
        Sets the Rich Presence activity. The reply is not waited for.

        :param payload: The :class:`.ActivityPayload` to show.
        :return: True if the activity was sent.
        """
        if not self.is_connected:
            return False

        return await self._send(IPCOpcode.FRAME, self._set_activity(payload.to_dict()))

    async def clear_activity(self) -> bool:
        """
        Clears the Rich Presence activity.

        :return: True if the request was sent.
        """
        if not self.is_connected:
            return False

        return await self._send(IPCOpcode.FRAME, self._set_activity(None))


@asynccontextmanager
async def open_ipc_client(client_id: int, **kwargs: Any):
    """
    Opens an :class:`.IPCClient` with its own nursery, closing it on exit.

    The client is not connected yet; call :meth:`.IPCClient.ensure_connected`.
    """
    async with trio.open_nursery() as nursery:
        client = IPCClient(client_id, nursery, **kwargs)
        try:
            yield client
        finally:
            with trio.CancelScope(shield=True):
                await client.close()
