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
The local title list: a hand-editable file mapping title IDs to names.

Each line is ``<hex title id>:<name>``. Blank lines and lines starting with ``#`` are ignored.
Unknown IDs that get looked up are appended with an empty name, so the user only has to fill in
the blanks.

.. currentmodule:: nxpresence.titles.overrides
"""
import io
import logging
from os import PathLike
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple, Union

import trio

from nxpresence.titles.ids import format_title_id, parse_title_id

logger = logging.getLogger("nxpresence.titles")

FILE_HEADER = "# TitleID:Name\n"


def parse_title_list(text: str) -> Dict[int, str]:
    """
    Parses the contents of a title list file.

    The first line for any given title ID wins.

    :param text: The contents of the file.
    :return: A dict of ``title id -> name``. Names may be empty.
    """
    entries = {}

    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        idx = line.find(":")
        if idx <= 0:
            continue

        title_id = parse_title_id(line[:idx])
        if title_id is None:
            continue

        entries.setdefault(title_id, line[idx + 1:].strip())

    return entries


class TitleListStore(object):
    """
    Represents the local title list.

    .. code-block:: python3

        store = TitleListStore("DB/Titles.txt")
        await store.load()
        found, name = await store.resolve_or_add_missing(0x0100000000010000)

    The file is re-read automatically if it changes on disk, so it can be edited while the
    poll loop is running.
    """

    def __init__(self, path: Union[str, PathLike], *,
                 legacy_path: Union[str, PathLike] = None,
                 reload_debounce: float = 0.25):
        """
        :param path: The path of the title list file.
        :param legacy_path: An older location of the file. It is copied over once if the file at
            ``path`` does not exist yet.
        :param reload_debounce: The minimum number of seconds between two reloads.
        """
        self._path = trio.Path(path)
        self._legacy_path = trio.Path(legacy_path) if legacy_path is not None else None

        #: The minimum number of seconds between two reloads.
        self.reload_debounce = reload_debounce

        #: Incremented every time the file is (re)loaded.
        self.version = 0

        self._lock = trio.Lock()
        self._entries = {}  # type: Dict[int, str]
        self._last_loaded = None  # type: Optional[float]
        self._last_seen_mtime = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return "<TitleListStore path={!s} entries={}>".format(self._path, len(self._entries))

    @property
    def path(self) -> trio.Path:
        """
        :return: The path of the title list on disk.
        """
        return self._path

    @property
    def entries(self) -> Mapping[int, str]:
        """
        :return: A read-only snapshot of the currently loaded entries. Later reloads and
            appends do not show up in it.
        """
        return MappingProxyType(dict(self._entries))

    async def _mtime(self) -> int:
        return (await self._path.stat()).st_mtime_ns

    async def _migrate_legacy(self) -> None:
        if self._legacy_path is None or await self._path.exists():
            return

        if not await self._legacy_path.exists():
            return

        try:
            await self._path.write_bytes(await self._legacy_path.read_bytes())
        except OSError:
            logger.warning("Failed to migrate title list from %s", self._legacy_path,
                           exc_info=True)
        else:
            logger.info("Migrated title list from %s to %s", self._legacy_path, self._path)

    async def _load(self) -> None:
        await self._path.parent.mkdir(parents=True, exist_ok=True)
        await self._migrate_legacy()

        if not await self._path.exists():
            await self._path.write_text(FILE_HEADER, encoding="utf-8")
            entries = {}
        else:
            entries = parse_title_list(await self._path.read_text(encoding="utf-8-sig"))

        self._last_seen_mtime = await self._mtime()
        # swapped wholesale, an old view stays valid for whoever holds it
        self._entries = entries
        self._last_loaded = trio.current_time()
        self.version += 1
        logger.debug("Loaded %d title(s) from %s", len(entries), self._path)

    async def load(self) -> None:
        """
        Loads (or reloads) the title list from disk, creating it if it does not exist.
        """
        async with self._lock:
            await self._load()

    async def _reload_if_changed(self) -> None:
        if self._last_loaded is None:
            return await self._load()

        if not await self._path.exists():
            return

        if await self._mtime() <= self._last_seen_mtime:
            return

        if trio.current_time() - self._last_loaded <= self.reload_debounce:
            return

        logger.info("Title list %s changed on disk, reloading", self._path)
        await self._load()

    async def _append(self, line: str) -> None:
        async with await trio.open_file(self._path, "ab+") as f:
            size = await f.seek(0, io.SEEK_END)
            prefix = b""
            if size:
                await f.seek(size - 1)
                if await f.read(1) not in (b"\n", b"\r"):
                    prefix = b"\n"

            await f.write(prefix + line.encode("utf-8"))

    async def resolve_or_add_missing(self, title_id: int) -> Tuple[bool, str]:
        """
        Looks up a title ID, adding it with an empty name if it is not in the list yet.

        :param title_id: The title ID to look up.
        :return: A tuple of ``(found, name)``. ``found`` is True if the ID was already in the list,
            even if its name has not been filled in yet.
        """
        async with self._lock:
            await self._reload_if_changed()

            existing = self._entries.get(title_id)
            if existing is not None:
                return True, existing

            await self._path.parent.mkdir(parents=True, exist_ok=True)
            await self._append("{}:\n".format(format_title_id(title_id)))
            self._last_seen_mtime = await self._mtime()
            # only remembered once it is on disk, so a failed append is retried next time
            self._entries[title_id] = ""
            logger.info("Added unknown title %s to %s", format_title_id(title_id), self._path)
            return False, ""
