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
Resolves title IDs to display names, first through the local title list and then through the
titledb pack.

.. currentmodule:: nxpresence.titles.resolver
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from nxpresence.titles.ids import display_title_id
from nxpresence.titles.overrides import TitleListStore
from nxpresence.titles.titledb import TitleDbPackStore

logger = logging.getLogger("nxpresence.titles")


class OverrideState(enum.Enum):
    """
    What the local title list knew about a title.
    """

    #: The title was not in the list. It has now been added with an empty name.
    NOT_FOUND = "not_found"

    #: The title is in the list, but nobody has filled in its name yet.
    FOUND_EMPTY = "found_empty"

    #: The title is in the list with a name.
    FOUND_NAMED = "found_named"


class ResolutionSource(enum.Enum):
    """
    Where the resolved name came from.
    """

    OVERRIDE = "override"
    DATABASE = "database"
    NONE = "none"


@dataclass(frozen=True)
class Resolution:
    """
    Represents the result of resolving a title ID.
    """

    title_id: int
    name: Optional[str]
    icon_url: Optional[str]
    source: ResolutionSource
    override_state: OverrideState

    @property
    def resolved(self) -> bool:
        return self.name is not None

    @property
    def display_name(self) -> str:
        """
        :return: The name, or the hex title ID if the title could not be resolved.
        """
        if self.name is not None:
            return self.name

        return display_title_id(self.title_id)


class TitleResolver(object):
    """
    Combines a :class:`.TitleListStore` and a :class:`.TitleDbPackStore`.

    A name in the title list always wins. A title that is missing from the list, or listed with an
    empty name, falls back to the pack. Icons only ever come from the pack.
    """

    def __init__(self, overrides: TitleListStore, database: TitleDbPackStore):
        self.overrides = overrides
        self.database = database

    async def resolve(self, title_id: int) -> Resolution:
        """
        Resolves a title ID.

        Unknown IDs are added to the title list as a side effect.

        :param title_id: The title ID to resolve. Must not be 0.
        """
        if title_id == 0:
            raise ValueError("Title ID 0 means nothing is running")

        found, override_name = await self.overrides.resolve_or_add_missing(title_id)
        if not found:
            state = OverrideState.NOT_FOUND
        elif override_name:
            state = OverrideState.FOUND_NAMED
        else:
            state = OverrideState.FOUND_EMPTY

        entry = self.database.get(title_id)
        icon_url = entry.icon_url if entry is not None else None

        if state is OverrideState.FOUND_NAMED:
            return Resolution(title_id, override_name, icon_url, ResolutionSource.OVERRIDE, state)

        if entry is not None:
            return Resolution(title_id, entry.name, icon_url, ResolutionSource.DATABASE, state)

        logger.debug("Could not resolve title %s", display_title_id(title_id))
        return Resolution(title_id, None, None, ResolutionSource.NONE, state)
