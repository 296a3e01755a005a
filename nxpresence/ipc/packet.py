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
Represents a Discord IPC packet, and the framing used to put it on the wire.

Each frame is an 8 byte header (opcode, payload length - both little-endian int32) followed by
exactly ``length`` bytes of UTF-8 JSON.

.. currentmodule:: nxpresence.ipc.packet
"""
import enum
import json
import struct
from typing import Any, Tuple, Union

import trio

from nxpresence.exc import IPCProtocolError

HEADER = struct.Struct("<ii")

#: The largest payload we are willing to read off of the channel.
MAX_PAYLOAD_LENGTH = 1024 * 1024


class IPCOpcode(enum.IntEnum):
    """
    Represents an IPC opcode.
    """
    HANDSHAKE = 0
    FRAME = 1
    CLOSE = 2
    PING = 3
    PONG = 4


def encode_frame(opcode: int, payload: bytes) -> bytes:
    """
    Encodes a single frame. The header and payload are returned as one buffer so that they can
    be written in a single call.

    :param opcode: The opcode of the frame.
    :param payload: The raw payload bytes.
    """
    if len(payload) > MAX_PAYLOAD_LENGTH:
        raise ValueError("Payload is too large ({} bytes)".format(len(payload)))

    return HEADER.pack(int(opcode), len(payload)) + payload


def decode_header(header: bytes) -> Tuple[int, int]:
    """
    Decodes a frame header into ``(opcode, length)``.

    :raises IPCProtocolError: If the header is short, or the length is out of range.
    """
    if len(header) != HEADER.size:
        raise IPCProtocolError("Got a short IPC header ({} bytes)".format(len(header)))

    opcode, length = HEADER.unpack(header)
    if length < 0 or length > MAX_PAYLOAD_LENGTH:
        raise IPCProtocolError("Got invalid IPC payload length {}".format(length))

    return opcode, length


def decode_frame(data: bytes) -> Tuple[int, bytes]:
    """
    Decodes a complete frame into ``(opcode, payload)``.

    This method is not usually what you want; see :func:`.read_frame`.
    """
    opcode, length = decode_header(data[:HEADER.size])
    payload = data[HEADER.size:]

    if len(payload) != length:
        raise IPCProtocolError("Got invalid length.")

    return opcode, payload


async def _receive_exactly(stream: trio.abc.ReceiveStream, count: int) -> bytes:
    """
    Reads exactly ``count`` bytes off of a stream.
    """
    buf = bytearray()
    while len(buf) < count:
        chunk = await stream.receive_some(count - len(buf))
        if not chunk:
            raise IPCProtocolError(
                "IPC stream ended {} bytes into a {} byte read".format(len(buf), count)
            )
        buf += chunk

    return bytes(buf)


async def read_frame(stream: trio.abc.ReceiveStream) -> Tuple[int, bytes]:
    """
    Reads a single frame off of a stream.

    The length is validated before any of the payload is read.

    :return: A tuple of ``(opcode, payload)``.
    """
    opcode, length = decode_header(await _receive_exactly(stream, HEADER.size))
    if length == 0:
        return opcode, b""

    return opcode, await _receive_exactly(stream, length)


class IPCPacket(object):
    """
    Represents an IPC packet.
    """

    def __init__(self, opcode: int, data: Union[dict, bytes, None]):
        """
        :param opcode: The :class:`.IPCOpcode` for this packet.
        :param data: A dict of data enclosed in this packet, or the raw payload bytes.
        """
        try:
            self.opcode = IPCOpcode(opcode)
        except ValueError:
            # unknown opcodes are kept as plain ints
            self.opcode = opcode

        if isinstance(data, (bytes, bytearray)):
            self._raw = bytes(data)
            self._json_data = None
        else:
            self._raw = None
            self._json_data = data

    def __repr__(self) -> str:
        return "<IPCPacket opcode={!r} length={}>".format(self.opcode, len(self.payload))

    @staticmethod
    def _pack_json(data: Any) -> str:
        """
        Packs JSON in a compact representation.

        :param data: The data to pack.
        """
        return json.dumps(data, indent=None, separators=(',', ':'))

    # properties
    @property
    def payload(self) -> bytes:
        """
        Gets the raw payload bytes for this packet.
        """
        if self._raw is None:
            self._raw = self._pack_json(self._json_data).encode("utf-8")

        return self._raw

    @property
    def json(self) -> Any:
        """
        Gets the decoded JSON body of this packet.

        :raises ValueError: If the body is not valid JSON.
        """
        if self._json_data is None and self._raw:
            self._json_data = json.loads(self._raw.decode("utf-8"))

        return self._json_data

    @property
    def _body(self) -> dict:
        body = self.json
        return body if isinstance(body, dict) else {}

    @property
    def event(self) -> str:
        """
        Gets the event for this packet. Received packets only.
        """
        return self._body.get("evt")

    @property
    def cmd(self) -> str:
        """
        Gets the command for this packet.
        """
        return self._body.get("cmd")

    @property
    def data(self) -> Any:
        """
        Gets the inner data for this packet.
        """
        return self._body.get("data")

    def serialize(self) -> bytes:
        """
        Serializes this packet into a series of bytes.
        """
        return encode_frame(self.opcode, self.payload)

    @classmethod
    def deserialize(cls, data: bytes) -> 'IPCPacket':
        """
        Deserializes a full packet.
        """
        opcode, payload = decode_frame(data)
        return IPCPacket(opcode, payload)

    @classmethod
    async def read_packet(cls, stream: trio.abc.ReceiveStream) -> 'IPCPacket':
        """
        Reads a packet off of the stream.
        """
        opcode, payload = await read_frame(stream)
        return IPCPacket(opcode, payload)
