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
The presence bridge: polls the device and mirrors the running title into Discord.

.. currentmodule:: nxpresence.core.bridge
"""
import logging
import time
from typing import Optional

import trio

from nxpresence.core.config import Config
from nxpresence.core.state_client import DeviceStateClient
from nxpresence.dataclasses.activity import ActivityPayload
from nxpresence.ipc.client import IPCClient
from nxpresence.titles.resolver import Resolution, TitleResolver

logger = logging.getLogger("nxpresence.bridge")


class PresenceBridge(object):
    """
    Runs the poll loop.

    Every tick the device state is fetched, the IPC connection is (re)established if needed, and
    the running title is resolved and published. An activity is only re-sent when it changes or
    after a reconnect.
    """

    def __init__(self, config: Config, ipc: IPCClient, resolver: TitleResolver,
                 state_client: DeviceStateClient):
        self.config = config
        self.ipc = ipc
        self.resolver = resolver
        self.state_client = state_client

        #: The title ID currently running on the device, or None.
        self.current_title = None  # type: Optional[int]

        #: The unix time the current title was first seen.
        self.started_at = None  # type: Optional[int]

        #: The last resolution, for display purposes.
        self.last_resolution = None  # type: Optional[Resolution]

        self._last_payload = None  # type: Optional[ActivityPayload]
        self._cleared = False

    def build_payload(self, resolution: Resolution, started_at: int) -> ActivityPayload:
        """
        Builds the activity shown for a resolved title.
        """
        name = resolution.display_name
        button_label = button_url = None
        if self.config.show_button:
            button_label, button_url = self.config.button_label, self.config.button_url

        return ActivityPayload(
            details=name,
            state=self.config.state_text,
            start=started_at,
            name=self.config.rpc_name or None,
            large_image=resolution.icon_url,
            large_text=name if resolution.icon_url else None,
            button_label=button_label,
            button_url=button_url,
        )

    async def _clear(self) -> None:
        self.current_title = None
        self.started_at = None
        self.last_resolution = None
        if self._cleared:
            return

        if await self.ipc.clear_activity():
            logger.info("Nothing running, cleared the activity")
            self._cleared = True
            self._last_payload = None

    async def tick(self) -> None:
        """
        Runs a single poll.
        """
        state = await self.state_client.fetch_state()

        was_connected = self.ipc.is_connected
        if not await self.ipc.ensure_connected():
            self._last_payload = None
            self._cleared = False
            return

        if not was_connected:
            # a fresh connection starts out without an activity
            self._last_payload = None
            self._cleared = False

        if state is None or not state.is_running_title:
            return await self._clear()

        title_id = state.active_program_id
        if title_id != self.current_title:
            self.current_title = title_id
            self.started_at = int(time.time())

        resolution = await self.resolver.resolve(title_id)
        self.last_resolution = resolution
        payload = self.build_payload(resolution, self.started_at)
        if payload == self._last_payload:
            return

        if await self.ipc.publish_activity(payload):
            logger.info(f"Now showing {resolution.display_name} ({resolution.source.value})")
            self._last_payload = payload
            self._cleared = False

    async def run(self, *, task_status=trio.TASK_STATUS_IGNORED) -> None:
        """
        Runs the poll loop forever. Errors in a single tick are logged and the loop carries on.
        """
        logger.info(f"Polling {self.state_client.url} every {self.config.poll_interval}s")
        task_status.started()

        while True:
            try:
                await self.tick()
            except Exception:
                logger.exception("Poll failed")

            await trio.sleep(self.config.poll_interval)
