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
nxpresence - Shows the title running on a Nintendo Switch as Discord Rich Presence.

.. currentmodule:: nxpresence

.. autosummary::
    :toctree:

    core
    dataclasses
    ipc
    titles

    exc
"""
import sys
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("nxpresence")
except PackageNotFoundError:
    __version__ = "0.0.0"

_fmt = "nxpresence/{0} (+titledb) Python/{1[0]}.{1[1]}"
USER_AGENT = _fmt.format(__version__, sys.version_info)
del _fmt


from nxpresence.dataclasses.activity import ActivityPayload
from nxpresence.dataclasses.device import DeviceState
from nxpresence.exc import IPCError, IPCProtocolError, NXPresenceError, PackDownloadError
from nxpresence.ipc.client import IPCClient, IPCState, open_ipc_client
from nxpresence.titles.overrides import TitleListStore
from nxpresence.titles.resolver import OverrideState, Resolution, ResolutionSource, TitleResolver
from nxpresence.titles.titledb import TitleDbEntry, TitleDbPackStore
