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
Title ID parsing and formatting.

Title IDs are always handled as unsigned 64-bit ints; the hex text forms only exist on the way in
and out of files.

.. currentmodule:: nxpresence.titles.ids
"""
import string
from typing import Optional

MAX_TITLE_ID = (1 << 64) - 1

_HEX_DIGITS = frozenset(string.hexdigits)


def parse_title_id(text: str) -> Optional[int]:
    """
    Parses a hex title ID, optionally prefixed with ``0x``.

    :param text: The text to parse.
    :return: The title ID, or None if the text is not a valid 64-bit hex number.
    """
    if not isinstance(text, str):
        return None

    s = text.strip()
    if s[:2].lower() == "0x":
        s = s[2:]

    if not s or not _HEX_DIGITS.issuperset(s):
        return None

    value = int(s, 16)
    if value > MAX_TITLE_ID:
        return None

    return value


def format_title_id(title_id: int) -> str:
    """
    Formats a title ID as 16 uppercase hex digits, as used in the override list and the
    compiled cache.
    """
    return "{:016X}".format(title_id)


def display_title_id(title_id: int) -> str:
    """
    Formats a title ID for display, e.g. ``0x0100000000010000``.
    """
    return "0x" + format_title_id(title_id)
