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
Exceptions raised from within the library.

.. currentmodule:: nxpresence.exc
"""


class NXPresenceError(Exception):
    """
    The base class for all nxpresence exceptions.
    """


class IPCError(NXPresenceError, ConnectionError):
    """
    Represents an error with the IPC connection to the Discord client.
    """


class IPCProtocolError(IPCError):
    """
    Raised when the other side of the IPC channel sends something that does not follow the
    framing rules, such as an out of range length or a frame cut short by end-of-stream.
    """


class PackDownloadError(NXPresenceError):
    """
    Raised when a titledb pack could not be fetched from any of the mirrors.

    The last mirror's error is chained as ``__cause__``.

    :ivar pack: The name of the pack that failed to download.
    :ivar urls: The URLs that were tried, in order.
    """

    def __init__(self, pack: str, urls):
        self.pack = pack
        self.urls = list(urls)

    def __str__(self) -> str:
        return "Failed to download titledb pack {} from {} mirror(s)".format(
            self.pack, len(self.urls)
        )

    __repr__ = __str__


class HTTPStatusError(NXPresenceError):
    """
    Raised when a HTTP request completes with a non-2xx status code.
    """

    def __init__(self, url: str, status_code: int):
        self.url = url
        self.status_code = status_code

    def __str__(self) -> str:
        return "GET {} => {}".format(self.url, self.status_code)

    __repr__ = __str__
