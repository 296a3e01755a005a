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
Polls the device's ``/state`` endpoint.

.. currentmodule:: nxpresence.core.state_client
"""
import logging
from typing import Optional

import asks
import trio
from asks.errors import AsksException
from h11 import RemoteProtocolError

import nxpresence
from nxpresence.dataclasses.device import DeviceState

logger = logging.getLogger("nxpresence.state")


class DeviceStateClient(object):
    """
    Fetches the current state from the sysmodule running on the device.
    """

    def __init__(self, host: str, port: int, *, timeout: float = 2.0, session=None):
        """
        :param host: The IP address or host name of the device.
        :param port: The port the device's HTTP server listens on.
        :param timeout: The timeout of a single poll, in seconds.
        :param session: The :class:`asks.Session` to use.
        """
        self.host = host
        self.port = port
        self.timeout = timeout
        self._session = session

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/state"

    @property
    def session(self) -> asks.Session:
        if self._session is None:
            self._session = asks.Session(connections=1)

        return self._session

    async def fetch_state(self) -> Optional[DeviceState]:
        """
        Fetches the state once.

        :return: The :class:`.DeviceState`, or None if the device could not be reached or sent
            something unexpected.
        """
        url = self.url
        try:
            with trio.fail_after(self.timeout):
                response = await self.session.get(
                    url, headers={"User-Agent": nxpresence.USER_AGENT}
                )
        except (OSError, AsksException, RemoteProtocolError, trio.TooSlowError) as e:
            logger.debug(f"GET {url} failed: {e!r}")
            return None

        if response.status_code != 200:
            logger.debug(f"GET {url} => {response.status_code}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.debug(f"GET {url} returned invalid JSON")
            return None

        return DeviceState.from_json(data)
