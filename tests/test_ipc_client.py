import json
import struct

import pytest
import trio
import trio.testing

from nxpresence.dataclasses.activity import ActivityPayload
from nxpresence.ipc.client import IPCState, open_ipc_client
from nxpresence.ipc.packet import IPCOpcode, MAX_PAYLOAD_LENGTH, decode_frame, encode_frame, \
    read_frame


def make_opener(stream, available=(0,)):
    attempts = []

    async def opener(slot):
        attempts.append(slot)
        if slot not in available:
            raise FileNotFoundError(f"discord-ipc-{slot}")
        return stream

    opener.attempts = attempts
    return opener


class RecordingStream(trio.abc.Stream):
    """
    A stream that records every write, and yields in the middle of each send_all so that
    unsynchronised writers would interleave.
    """

    def __init__(self, fail_writes=False):
        self.writes = []
        self.closed = False
        self.fail_writes = fail_writes
        self._incoming_send, self._incoming = trio.open_memory_channel(100)
        self._buffer = b""

    def feed(self, data: bytes) -> None:
        self._incoming_send.send_nowait(data)

    async def send_all(self, data) -> None:
        if self.closed:
            raise trio.ClosedResourceError()
        if self.fail_writes:
            raise trio.BrokenResourceError()

        half = len(data) // 2
        self.writes.append(bytes(data[:half]))
        await trio.sleep(0)
        self.writes.append(bytes(data[half:]))

    async def wait_send_all_might_not_block(self) -> None:
        pass

    async def receive_some(self, max_bytes=None) -> bytes:
        if not self._buffer:
            self._buffer = await self._incoming.receive()

        count = max_bytes or len(self._buffer)
        chunk, self._buffer = self._buffer[:count], self._buffer[count:]
        return chunk

    async def aclose(self) -> None:
        self.closed = True
        await trio.lowlevel.checkpoint()


async def wait_disconnected(ipc):
    with trio.fail_after(1):
        while ipc.is_connected:
            await trio.sleep(0.01)


async def read_json_frame(stream):
    opcode, payload = await read_frame(stream)
    return opcode, json.loads(payload.decode("utf-8"))


@pytest.mark.trio
async def test_connect_scans_slots_and_handshakes():
    client, server = trio.testing.memory_stream_pair()
    opener = make_opener(client, available=(2,))

    async with open_ipc_client(1234, opener=opener) as ipc:
        assert await ipc.ensure_connected() is True
        assert ipc.state is IPCState.CONNECTED
        assert opener.attempts == [0, 1, 2]

        opcode, body = await read_json_frame(server)
        assert opcode == IPCOpcode.HANDSHAKE
        assert body == {"v": 1, "client_id": "1234"}


@pytest.mark.trio
async def test_ensure_connected_is_a_no_op_when_connected():
    client, server = trio.testing.memory_stream_pair()
    opener = make_opener(client)

    async with open_ipc_client(1, opener=opener) as ipc:
        await ipc.ensure_connected()
        assert await ipc.ensure_connected() is True
        assert opener.attempts == [0]


@pytest.mark.trio
async def test_no_slot_available_leaves_client_disconnected():
    opener = make_opener(None, available=())

    async with open_ipc_client(1, opener=opener) as ipc:
        assert await ipc.ensure_connected() is False
        assert ipc.state is IPCState.DISCONNECTED
        assert opener.attempts == list(range(10))
        assert await ipc.publish_activity(ActivityPayload("d", "s", 0)) is False
        assert await ipc.clear_activity() is False


@pytest.mark.trio
async def test_slow_slot_times_out_and_next_slot_is_tried():
    client, server = trio.testing.memory_stream_pair()
    attempts = []

    async def opener(slot):
        attempts.append(slot)
        if slot == 0:
            await trio.sleep_forever()
        return client

    async with open_ipc_client(1, opener=opener) as ipc:
        assert await ipc.ensure_connected() is True
        assert attempts == [0, 1]


@pytest.mark.trio
async def test_failed_handshake_moves_to_next_slot():
    broken = RecordingStream(fail_writes=True)
    good = RecordingStream()
    streams = {0: broken, 1: good}

    async def opener(slot):
        return streams[slot]

    async with open_ipc_client(1, opener=opener, slots=(0, 1)) as ipc:
        assert await ipc.ensure_connected() is True
        assert broken.closed
        assert not good.closed


@pytest.mark.trio
async def test_ping_is_answered_with_identical_pong():
    client, server = trio.testing.memory_stream_pair()

    async with open_ipc_client(1, opener=make_opener(client)) as ipc:
        await ipc.ensure_connected()
        await read_frame(server)

        body = b'{"nonce":"abc","weird":  [1, 2]}'
        await server.send_all(encode_frame(IPCOpcode.PING, body))

        with trio.fail_after(1):
            assert await read_frame(server) == (IPCOpcode.PONG, body)

        assert ipc.is_connected


@pytest.mark.trio
async def test_publish_activity_builds_set_activity():
    client, server = trio.testing.memory_stream_pair()
    payload = ActivityPayload(
        details="Game A", state="Playing", start=1700000000,
        large_image="https://x/i.png", large_text="Game A",
        button_label="GitHub", button_url="https://example.com",
    )

    async with open_ipc_client(1, opener=make_opener(client)) as ipc:
        await ipc.ensure_connected()
        await read_frame(server)

        assert await ipc.publish_activity(payload) is True
        assert await ipc.publish_activity(payload) is True

        opcode, first = await read_json_frame(server)
        _, second = await read_json_frame(server)

    assert opcode == IPCOpcode.FRAME
    assert first["cmd"] == "SET_ACTIVITY"
    assert isinstance(first["args"]["pid"], int)
    assert first["args"]["activity"] == {
        "details": "Game A",
        "state": "Playing",
        "timestamps": {"start": 1700000000},
        "assets": {"large_image": "https://x/i.png", "large_text": "Game A"},
        "buttons": [{"label": "GitHub", "url": "https://example.com"}],
    }
    assert first["nonce"] != second["nonce"]


@pytest.mark.trio
async def test_clear_activity_sends_null_activity():
    client, server = trio.testing.memory_stream_pair()

    async with open_ipc_client(1, opener=make_opener(client)) as ipc:
        await ipc.ensure_connected()
        await read_frame(server)

        assert await ipc.clear_activity() is True
        opcode, body = await read_json_frame(server)

    assert opcode == IPCOpcode.FRAME
    assert body["cmd"] == "SET_ACTIVITY"
    assert body["args"]["activity"] is None


@pytest.mark.trio
async def test_oversized_frame_disconnects():
    client, server = trio.testing.memory_stream_pair()

    async with open_ipc_client(1, opener=make_opener(client)) as ipc:
        await ipc.ensure_connected()
        await read_frame(server)

        await server.send_all(struct.pack("<ii", IPCOpcode.FRAME, MAX_PAYLOAD_LENGTH + 1))
        await wait_disconnected(ipc)

        assert ipc.state is IPCState.DISCONNECTED
        assert await ipc.publish_activity(ActivityPayload("d", "s", 0)) is False


@pytest.mark.trio
async def test_close_opcode_disconnects():
    client, server = trio.testing.memory_stream_pair()

    async with open_ipc_client(1, opener=make_opener(client)) as ipc:
        await ipc.ensure_connected()
        await read_frame(server)

        await server.send_all(encode_frame(IPCOpcode.CLOSE, b'{"code":4000}'))
        await wait_disconnected(ipc)


@pytest.mark.trio
async def test_end_of_stream_disconnects_and_reconnect_works():
    first_client, first_server = trio.testing.memory_stream_pair()
    second_client, second_server = trio.testing.memory_stream_pair()
    streams = [first_client, second_client]

    async def opener(slot):
        return streams.pop(0)

    async with open_ipc_client(1, opener=opener, slots=(0,)) as ipc:
        await ipc.ensure_connected()
        await first_server.aclose()
        await wait_disconnected(ipc)

        assert await ipc.ensure_connected() is True
        opcode, _ = await read_frame(second_server)
        assert opcode == IPCOpcode.HANDSHAKE


@pytest.mark.trio
async def test_unknown_opcodes_are_ignored():
    client, server = trio.testing.memory_stream_pair()

    async with open_ipc_client(1, opener=make_opener(client)) as ipc:
        await ipc.ensure_connected()
        await read_frame(server)

        await server.send_all(encode_frame(42, b"{}"))
        await server.send_all(encode_frame(IPCOpcode.PONG, b"{}"))
        await server.send_all(encode_frame(IPCOpcode.FRAME, b"not json"))
        await server.send_all(encode_frame(IPCOpcode.PING, b"{}"))

        with trio.fail_after(1):
            assert await read_frame(server) == (IPCOpcode.PONG, b"{}")

        assert ipc.is_connected


@pytest.mark.trio
async def test_ready_event_records_user():
    client, server = trio.testing.memory_stream_pair()
    ready = {"cmd": "DISPATCH", "evt": "READY", "data": {"v": 1, "user": {"username": "nx"}}}

    async with open_ipc_client(1, opener=make_opener(client)) as ipc:
        await ipc.ensure_connected()
        await read_frame(server)

        await server.send_all(encode_frame(IPCOpcode.FRAME, json.dumps(ready).encode()))
        with trio.fail_after(1):
            while ipc.user is None:
                await trio.sleep(0.01)

        assert ipc.user == {"username": "nx"}


@pytest.mark.trio
async def test_publish_and_pong_frames_never_interleave():
    stream = RecordingStream()
    payload = ActivityPayload(details="Game A", state="Playing", start=1)

    async with open_ipc_client(1, opener=make_opener(stream)) as ipc:
        await ipc.ensure_connected()
        assert len(stream.writes) == 2

        async with trio.open_nursery() as nursery:
            stream.feed(encode_frame(IPCOpcode.PING, b'{"ping":true}'))
            nursery.start_soon(ipc.publish_activity, payload)
            nursery.start_soon(ipc.publish_activity, payload)

        with trio.fail_after(1):
            while len(stream.writes) < 8:
                await trio.sleep(0.01)

    frames = [
        decode_frame(stream.writes[i] + stream.writes[i + 1])
        for i in range(0, len(stream.writes), 2)
    ]
    opcodes = [opcode for opcode, _ in frames]

    assert opcodes[0] == IPCOpcode.HANDSHAKE
    assert sorted(opcodes[1:]) == [IPCOpcode.FRAME, IPCOpcode.FRAME, IPCOpcode.PONG]
    assert (IPCOpcode.PONG, b'{"ping":true}') in frames


@pytest.mark.trio
async def test_write_failure_disconnects_silently():
    stream = RecordingStream()

    async with open_ipc_client(1, opener=make_opener(stream)) as ipc:
        await ipc.ensure_connected()
        stream.fail_writes = True

        assert await ipc.publish_activity(ActivityPayload("d", "s", 0)) is False
        assert not ipc.is_connected
        assert stream.closed


@pytest.mark.trio
async def test_close_is_idempotent():
    client, server = trio.testing.memory_stream_pair()

    async with open_ipc_client(1, opener=make_opener(client)) as ipc:
        await ipc.ensure_connected()
        await ipc.close()
        await ipc.close()

        assert not ipc.is_connected
        assert await ipc.ensure_connected() is False
