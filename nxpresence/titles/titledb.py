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
The titledb pack store. Downloads a locale pack, compiles it into a small cache file, and resolves
title IDs against it.

Pack layouts differ upstream, so raw packs are scanned heuristically rather than parsed against a
schema.

.. currentmodule:: nxpresence.titles.titledb
"""
import json
import logging
from dataclasses import dataclass
from os import PathLike
from typing import Any, Dict, Iterable, Mapping, Optional, Union

import asks
import trio
from asks.errors import AsksException
from h11 import RemoteProtocolError

import nxpresence
from nxpresence.exc import HTTPStatusError, PackDownloadError
from nxpresence.titles.ids import format_title_id, parse_title_id

logger = logging.getLogger("nxpresence.titledb")

DEFAULT_PACK = "DE.de.json"

DEFAULT_PACKS = (
    "DE.de.json",
    "US.en.json",
    "EU.en.json",
    "JP.ja.json",
    "FR.fr.json",
    "ES.es.json",
    "IT.it.json",
    "PT.pt.json",
    "RU.ru.json",
    "KO.ko.json",
    "ZH.zh.json",
)

# some networks block raw.githubusercontent.com
MIRRORS = (
    "https://cdn.jsdelivr.net/gh/blawar/titledb@master/{pack}",
    "https://raw.githubusercontent.com/blawar/titledb/master/{pack}",
    "https://github.com/blawar/titledb/raw/master/{pack}",
)

ID_KEYS = ("titleId", "title_id", "titleid", "tid", "id")
NAME_KEYS = ("name", "title", "game", "Name")
# box art is only used when there is no proper icon
ICON_KEYS = ("iconUrl", "icon_url", "icon", "IconUrl", "frontBoxArt", "bannerUrl")


@dataclass(frozen=True)
class TitleDbEntry:
    """
    Represents a single title in a pack.
    """

    #: The name of the title. Never empty.
    name: str

    #: The URL of the title's icon, if the pack had one.
    icon_url: Optional[str] = None


def _first_string(obj: dict, keys: Iterable[str]) -> Optional[str]:
    """
    Gets the first non-blank string value for any of ``keys``, stripped.
    """
    for key in keys:
        value = obj.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()

    return None


def _parse_key_id(key: str) -> Optional[int]:
    """
    Parses an object key as a title ID. Only full 16 digit IDs count, so that other numeric keys
    (like eShop IDs) are not mistaken for title IDs.
    """
    s = key.strip()
    if s[:2].lower() == "0x":
        s = s[2:]

    if len(s) != 16:
        return None

    return parse_title_id(s)


def extract_entry(obj: dict) -> Optional[TitleDbEntry]:
    """
    Extracts a :class:`.TitleDbEntry` from a JSON object.

    :return: The entry, or None if the object has no usable name.
    """
    name = _first_string(obj, NAME_KEYS)
    if name is None:
        return None

    return TitleDbEntry(name, _first_string(obj, ICON_KEYS))


def _scan(node: Any, entries: Dict[int, TitleDbEntry]) -> None:
    if isinstance(node, list):
        for item in node:
            _scan(item, entries)
        return

    if not isinstance(node, dict):
        return

    # packs keyed by title ID
    for key, value in node.items():
        if not isinstance(value, dict):
            continue

        title_id = _parse_key_id(key)
        if title_id is None or title_id in entries:
            continue

        entry = extract_entry(value)
        if entry is not None:
            entries[title_id] = entry

    # objects carrying their own ID
    id_text = _first_string(node, ID_KEYS)
    if id_text is not None:
        title_id = parse_title_id(id_text)
        if title_id is not None and title_id not in entries:
            entry = extract_entry(node)
            if entry is not None:
                entries[title_id] = entry

    for value in node.values():
        if isinstance(value, (list, dict)):
            _scan(value, entries)


def scan_pack(document: Any) -> Dict[int, TitleDbEntry]:
    """
    Recursively scans a decoded pack for title entries.

    Every object is checked twice: once for keys that are title IDs, and once for an ID field
    among :data:`ID_KEYS`. An entry is only accepted if it has a name; the first entry found for
    any given ID wins.

    :param document: The decoded JSON document.
    :return: A dict of ``title id -> entry``.
    """
    entries = {}
    _scan(document, entries)
    return entries


def parse_raw_pack(data: bytes) -> Dict[int, TitleDbEntry]:
    """
    Parses a raw pack downloaded from titledb.

    :return: The entries found, or an empty dict if the pack is not valid JSON.
    """
    try:
        document = json.loads(data.decode("utf-8-sig"))
    except ValueError:
        logger.warning("Raw titledb pack is not valid JSON, ignoring it")
        return {}

    return scan_pack(document)


def compile_entries(entries: Mapping[int, TitleDbEntry]) -> bytes:
    """
    Compiles entries into the cache format.

    The cache is a JSON object keyed by 16 digit uppercase title IDs in ascending order, with
    ``{"name": ..., "iconUrl": ...}`` values. ``iconUrl`` is left out when there is no icon.
    """
    compiled = {}
    for title_id in sorted(entries):
        entry = entries[title_id]
        value = {"name": entry.name}
        if entry.icon_url:
            value["iconUrl"] = entry.icon_url

        compiled[format_title_id(title_id)] = value

    return json.dumps(compiled, ensure_ascii=False, separators=(',', ':')).encode("utf-8")


def parse_compiled(data: bytes) -> Dict[int, TitleDbEntry]:
    """
    Parses a compiled cache.

    Older caches stored the bare name as the value; those still load, without an icon.

    :return: The entries, or an empty dict if the cache is not valid JSON.
    """
    try:
        document = json.loads(data.decode("utf-8-sig"))
    except ValueError:
        logger.warning("Compiled titledb cache is not valid JSON, ignoring it")
        return {}

    entries = {}
    if not isinstance(document, dict):
        return entries

    for key, value in document.items():
        title_id = parse_title_id(key)
        if title_id is None:
            continue

        if isinstance(value, str):
            if value.strip():
                entries[title_id] = TitleDbEntry(value.strip())
            continue

        if not isinstance(value, dict):
            continue

        name = _first_string(value, ("name",))
        if name is None:
            continue

        entries[title_id] = TitleDbEntry(name, _first_string(value, ("iconUrl",)))

    return entries


async def _write_atomic(path: trio.Path, data: bytes) -> None:
    tmp = path.with_name(path.name + ".tmp")
    await tmp.write_bytes(data)
    await tmp.replace(path)


class TitleDbPackStore(object):
    """
    Represents the locally cached titledb pack.

    .. code-block:: python3

        store = TitleDbPackStore("DB/titledb")
        await store.load_or_update("US.en.json")
        name = store.try_resolve_name(0x0100000000010000)

    Only one pack is loaded at a time. Loading a new pack replaces the previous entries in one
    go, so lookups made during a reload see either the old or the new pack, never a mix.
    """

    def __init__(self, db_dir: Union[str, PathLike], *,
                 session=None,
                 mirrors: Iterable[str] = MIRRORS,
                 packs: Iterable[str] = DEFAULT_PACKS,
                 timeout: float = 30):
        """
        :param db_dir: The directory that raw packs and compiled caches are stored in.
        :param session: The :class:`asks.Session` to download with. One is created on first use
            if not provided.
        :param mirrors: The mirror URL templates to try, in order. ``{pack}`` is replaced with the
            pack name.
        :param packs: The packs offered to the user.
        :param timeout: The timeout for each individual download attempt, in seconds.
        """
        self._db_dir = trio.Path(db_dir)
        self._session = session
        self.mirrors = tuple(mirrors)
        self.timeout = timeout
        self.headers = {"User-Agent": nxpresence.USER_AGENT}

        self._packs = tuple(packs)
        self._lock = trio.Lock()
        self._entries = None  # type: Optional[Dict[int, TitleDbEntry]]
        self._pack_name = None  # type: Optional[str]

    def __repr__(self) -> str:
        return "<TitleDbPackStore pack={!r} entries={}>".format(self._pack_name, self.entry_count)

    @property
    def session(self) -> asks.Session:
        if self._session is None:
            self._session = asks.Session(connections=2)

        return self._session

    @property
    def packs(self):
        """
        :return: The names of the packs that can be selected.
        """
        return self._packs

    @property
    def db_dir(self) -> trio.Path:
        return self._db_dir

    @property
    def pack_name(self) -> Optional[str]:
        """
        :return: The name of the currently loaded pack, or None if nothing is loaded.
        """
        return self._pack_name

    @property
    def is_loaded(self) -> bool:
        return self._entries is not None

    @property
    def entry_count(self) -> int:
        return len(self._entries) if self._entries is not None else 0

    def raw_path(self, pack: str) -> trio.Path:
        return self._db_dir / pack

    def compiled_path(self, pack: str) -> trio.Path:
        return self._db_dir / (pack + ".map.json")

    @staticmethod
    def _clean_pack_name(pack: Optional[str]) -> str:
        pack = (pack or "").strip() or DEFAULT_PACK
        if "/" in pack or "\\" in pack or pack.startswith("."):
            raise ValueError("Invalid pack name {!r}".format(pack))

        return pack

    async def download_pack(self, pack: str) -> bytes:
        """
        Downloads a raw pack, trying each mirror in order.

        :param pack: The name of the pack file, e.g. ``US.en.json``.
        :return: The body of the first successful response.
        :raises PackDownloadError: If every mirror failed.
        """
        urls = [template.format(pack=pack) for template in self.mirrors]
        last_error = None

        for url in urls:
            logger.debug(f"GET {url} => (pending)")
            try:
                with trio.fail_after(self.timeout):
                    response = await self.session.get(url, headers=self.headers.copy())
            except (OSError, AsksException, RemoteProtocolError, trio.TooSlowError) as e:
                logger.warning(f"GET {url} failed: {e!r}")
                last_error = e
                continue

            logger.debug(f"GET {url} => {response.status_code}")
            if not 200 <= response.status_code < 300:
                last_error = HTTPStatusError(url, response.status_code)
                logger.warning(f"GET {url} failed: {last_error}")
                continue

            return response.content

        raise PackDownloadError(pack, urls) from last_error

    async def _compiled_is_fresh(self, raw: trio.Path, compiled: trio.Path) -> bool:
        if not await compiled.exists():
            return False

        if not await raw.exists():
            return True

        return (await compiled.stat()).st_mtime_ns >= (await raw.stat()).st_mtime_ns

    async def load_or_update(self, pack: str = None, force_download: bool = False) -> None:
        """
        Loads a pack, downloading and compiling it first if needed.

        A compiled cache that is at least as new as the raw pack is loaded directly. Otherwise the
        raw pack is downloaded (unless it is already on disk and no download was forced), compiled,
        and the raw pack is deleted again.

        :param pack: The name of the pack file. Defaults to :data:`DEFAULT_PACK`.
        :param force_download: If True, always download the pack again.
        :raises PackDownloadError: If the pack had to be downloaded and every mirror failed.
        """
        pack = self._clean_pack_name(pack)

        async with self._lock:
            await self._db_dir.mkdir(parents=True, exist_ok=True)
            raw = self.raw_path(pack)
            compiled = self.compiled_path(pack)

            if not force_download and await self._compiled_is_fresh(raw, compiled):
                entries = parse_compiled(await compiled.read_bytes())
                logger.info(f"Loaded {len(entries)} title(s) from compiled cache {compiled}")
                self._entries, self._pack_name = entries, pack
                return

            if force_download or not await raw.exists():
                data = await self.download_pack(pack)
                await _write_atomic(raw, data)
            else:
                data = await raw.read_bytes()

            entries = parse_raw_pack(data)
            await _write_atomic(compiled, compile_entries(entries))
            logger.info(f"Compiled {len(entries)} title(s) from {pack} into {compiled}")
            self._entries, self._pack_name = entries, pack

            # the raw pack can always be downloaded again
            try:
                await raw.unlink()
            except OSError:
                logger.warning(f"Could not delete raw pack {raw}", exc_info=True)

    def get(self, title_id: int) -> Optional[TitleDbEntry]:
        """
        Gets the entry for a title ID.

        :return: The :class:`.TitleDbEntry`, or None if it is unknown or no pack is loaded.
        """
        entries = self._entries
        if entries is None:
            return None

        return entries.get(title_id)

    def try_resolve_name(self, title_id: int) -> Optional[str]:
        entry = self.get(title_id)
        return entry.name if entry is not None else None

    def try_get_icon_url(self, title_id: int) -> Optional[str]:
        entry = self.get(title_id)
        return entry.icon_url if entry is not None else None
