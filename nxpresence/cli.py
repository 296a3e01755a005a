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
Command line interface.

.. currentmodule:: nxpresence.cli
"""
import argparse
import logging
import sys
from pathlib import Path

import trio

from nxpresence.core.bridge import PresenceBridge
from nxpresence.core.config import Config
from nxpresence.core.state_client import DeviceStateClient
from nxpresence.exc import PackDownloadError
from nxpresence.ipc.client import open_ipc_client
from nxpresence.titles.ids import display_title_id, parse_title_id
from nxpresence.titles.overrides import TitleListStore
from nxpresence.titles.resolver import TitleResolver
from nxpresence.titles.titledb import DEFAULT_PACKS, TitleDbPackStore

logger = logging.getLogger("nxpresence.cli")


def make_stores(config: Config):
    overrides = TitleListStore(config.titles_path, legacy_path=config.legacy_titles_path)
    database = TitleDbPackStore(config.titledb_dir)
    return overrides, database


async def load_stores(config: Config, pack: str = None, force: bool = False) -> TitleResolver:
    """
    Loads the title list and the titledb pack. A pack that cannot be downloaded is logged and
    skipped, since the title list still works without it.
    """
    overrides, database = make_stores(config)
    await overrides.load()

    try:
        await database.load_or_update(pack or config.pack, force_download=force)
    except PackDownloadError:
        logger.error("Could not load titledb pack, continuing without it", exc_info=True)

    return TitleResolver(overrides, database)


async def _run(config: Config) -> int:
    resolver = await load_stores(config)
    state_client = DeviceStateClient(config.device_host, config.device_port,
                                     timeout=config.device_timeout)

    async with open_ipc_client(config.client_id) as ipc:
        bridge = PresenceBridge(config, ipc, resolver, state_client)
        await bridge.run()

    return 0


def cmd_run(args, config: Config) -> int:
    """
    Start the presence bridge.
    """
    if args.host:
        config["device"]["host"] = args.host
    if args.port:
        config["device"]["port"] = args.port
    if args.client_id:
        config["discord"]["client_id"] = args.client_id

    if not config.device_host:
        print("No device host configured; set device.host or pass --host", file=sys.stderr)
        return 2
    if not config.client_id:
        print("No Discord client ID configured; set discord.client_id or pass --client-id",
              file=sys.stderr)
        return 2

    try:
        return trio.run(_run, config)
    except KeyboardInterrupt:
        return 0


def cmd_resolve(args, config: Config) -> int:
    """
    Resolve a single title ID.
    """
    title_id = parse_title_id(args.title_id)
    if title_id is None or title_id == 0:
        print(f"Not a valid title ID: {args.title_id}", file=sys.stderr)
        return 2

    async def _resolve():
        resolver = await load_stores(config, pack=args.pack)
        return await resolver.resolve(title_id)

    resolution = trio.run(_resolve)
    print(f"{display_title_id(title_id)}: {resolution.display_name}")
    print(f"   source: {resolution.source.value} (title list: {resolution.override_state.value})")
    if resolution.icon_url:
        print(f"   icon:   {resolution.icon_url}")

    return 0 if resolution.resolved else 1


def cmd_update_db(args, config: Config) -> int:
    """
    Download and compile a titledb pack.
    """
    database = TitleDbPackStore(config.titledb_dir)

    try:
        trio.run(database.load_or_update, args.pack or config.pack, args.force)
    except PackDownloadError as e:
        print(f"{e}: {e.__cause__!r}", file=sys.stderr)
        return 1

    print(f"Loaded {database.entry_count} titles from {database.pack_name}")
    return 0


def cmd_packs(args, config: Config) -> int:
    """
    List the available packs.
    """
    for pack in DEFAULT_PACKS:
        marker = "*" if pack == config.pack else " "
        print(f" {marker} {pack}")

    return 0


def main(argv=None) -> int:
    """
    Main entry point.
    """
    parser = argparse.ArgumentParser(
        prog="nxpresence",
        description="Show the title running on a Nintendo Switch as Discord Rich Presence",
    )
    parser.add_argument("--config", "-c", type=Path, help="Path to the config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser("run", help="Start the presence bridge")
    run_parser.add_argument("--host", type=str, help="IP address of the device")
    run_parser.add_argument("--port", "-p", type=int, help="Port of the device's state server")
    run_parser.add_argument("--client-id", type=str, help="Discord application ID")
    run_parser.set_defaults(func=cmd_run)

    resolve_parser = subparsers.add_parser("resolve", help="Resolve a title ID")
    resolve_parser.add_argument("title_id", help="The title ID, in hex")
    resolve_parser.add_argument("--pack", type=str, help="The titledb pack to use")
    resolve_parser.set_defaults(func=cmd_resolve)

    update_parser = subparsers.add_parser("update-db", help="Download and compile a titledb pack")
    update_parser.add_argument("--pack", type=str, help="The titledb pack to download")
    update_parser.add_argument("--force", action="store_true", help="Download even if cached")
    update_parser.set_defaults(func=cmd_update_db)

    packs_parser = subparsers.add_parser("packs", help="List the titledb packs")
    packs_parser.set_defaults(func=cmd_packs)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    config = Config(args.config)
    return args.func(args, config)
