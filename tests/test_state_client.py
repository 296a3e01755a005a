import json

import pytest

from nxpresence.core.state_client import DeviceStateClient


class FakeResponse:
    def __init__(self, status_code=200, content=b""):
        self.status_code = status_code
        self.content = content

    def json(self):
        return json.loads(self.content)


class FakeSession:
    def __init__(self, result):
        self.result = result
        self.urls = []

    async def get(self, url, headers=None, **kwargs):
        self.urls.append(url)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


@pytest.mark.trio
async def test_fetch_state():
    body = json.dumps({"service": "SwitchDCActivity", "active_program_id": "0x0100000000010000"})
    session = FakeSession(FakeResponse(content=body.encode()))
    client = DeviceStateClient("192.168.1.50", 51234, session=session)

    state = await client.fetch_state()

    assert session.urls == ["http://192.168.1.50:51234/state"]
    assert state.active_program_id == 0x0100000000010000


@pytest.mark.trio
@pytest.mark.parametrize("result", [
    ConnectionRefusedError(),
    FakeResponse(status_code=500),
    FakeResponse(content=b"<html>"),
    FakeResponse(content=b'{"active_program_id": "garbage"}'),
])
async def test_fetch_state_failures_return_none(result):
    client = DeviceStateClient("192.168.1.50", 51234, session=FakeSession(result))

    assert await client.fetch_state() is None
