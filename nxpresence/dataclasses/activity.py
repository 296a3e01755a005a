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
Wrappers for Rich Presence activity objects.

.. currentmodule:: nxpresence.dataclasses.activity
"""
from dataclasses import dataclass
from typing import Optional


def _present(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


@dataclass(frozen=True)
class ActivityPayload:
    """
    Represents a single Rich Presence activity. This class can be created safely for usage with
    :class:`.IPCClient`.

    .. code-block:: python3

        payload = ActivityPayload(details="Playing", state="On Switch", start=int(time.time()))
        await ipc.publish_activity(payload)

    """

    #: The first line of the presence.
    details: str

    #: The second line of the presence.
    state: str

    #: The unix time (seconds) the activity started at.
    start: int

    #: Overrides the application name shown by Discord.
    name: Optional[str] = None

    large_image: Optional[str] = None
    large_text: Optional[str] = None
    small_image: Optional[str] = None
    small_text: Optional[str] = None

    #: The label of the single button.
    button_label: Optional[str] = None

    #: The URL the single button links to.
    button_url: Optional[str] = None

    @property
    def assets(self) -> Optional[dict]:
        """
        The assets for this activity, or None if none of the image fields are set.
        """
        fields = {
            "large_image": self.large_image,
            "large_text": self.large_text,
            "small_image": self.small_image,
            "small_text": self.small_text,
        }
        if not any(_present(value) for value in fields.values()):
            return None

        return {key: value for key, value in fields.items() if _present(value)}

    @property
    def buttons(self) -> Optional[list]:
        """
        The buttons for this activity. Only included if both the label and the URL are set.
        """
        if not (_present(self.button_label) and _present(self.button_url)):
            return None

        return [{"label": self.button_label, "url": self.button_url}]

    def to_dict(self) -> dict:
        """
        :return: The ``activity`` object sent with a ``SET_ACTIVITY`` command.
        """
        activity = {
            "details": self.details,
            "state": self.state,
            "timestamps": {"start": self.start},
        }

        if _present(self.name):
            activity["name"] = self.name

        assets = self.assets
        if assets is not None:
            activity["assets"] = assets

        buttons = self.buttons
        if buttons is not None:
            activity["buttons"] = buttons

        return activity
