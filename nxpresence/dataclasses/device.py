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
The state record reported by the device.

.. currentmodule:: nxpresence.dataclasses.device
"""
from dataclasses import dataclass
from typing import Optional

from nxpresence.titles.ids import MAX_TITLE_ID, parse_title_id


@dataclass(frozen=True)
class DeviceState:
    """
    Represents the JSON record returned by the device's ``/state`` endpoint.
    """

    #: The name of the service answering on the device.
    service: str

    #: The firmware version string.
    firmware: str

    #: The numeric program ID of the running title. 0 means nothing is running.
    active_program_id: int

    #: The textual name the device gives the running title ("HOME" when on the home menu).
    active_game: str

    #: When the current title was detected, in seconds since the device booted.
    started_sec: int = 0

    #: When the device last sampled the running title.
    last_update_sec: int = 0

    @property
    def is_running_title(self) -> bool:
        return self.active_program_id != 0

    @classmethod
    def from_json(cls, data: dict) -> 'Optional[DeviceState]':
        """
        Creates a new :class:`.DeviceState` from a decoded JSON record.

        :return: None if the record does not look like a device state.
        """
        if not isinstance(data, dict):
            return None

        program_id = data.get("active_program_id", 0)
        if isinstance(program_id, str):
            program_id = parse_title_id(program_id)
        elif not isinstance(program_id, int) or isinstance(program_id, bool):
            program_id = None
        elif not 0 <= program_id <= MAX_TITLE_ID:
            program_id = None

        if program_id is None:
            return None

        def _int(key: str) -> int:
            value = data.get(key, 0)
            return value if isinstance(value, int) else 0

        return cls(
            service=str(data.get("service", "")),
            firmware=str(data.get("firmware", "")),
            active_program_id=program_id,
            active_game=str(data.get("active_game", "")),
            started_sec=_int("started_sec"),
            last_update_sec=_int("last_update_sec"),
        )
