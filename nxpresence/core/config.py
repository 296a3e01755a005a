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
Configuration loading. Settings live in a YAML file; anything not set falls back to the defaults.

.. currentmodule:: nxpresence.core.config
"""
import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger("nxpresence.config")

DEFAULT_CONFIG = {
    "device": {
        "host": "",
        "port": 51234,
        "timeout": 2.0,
    },
    "poll_interval": 2.0,
    "discord": {
        "client_id": "",
        "rpc_name": "",
        "state_text": "Playing on Nintendo Switch",
        "show_button": False,
        "button_label": "GitHub",
        "button_url": "",
    },
    "titledb": {
        "pack": "DE.de.json",
        "data_dir": "",
        "legacy_titles": "",
    },
}


def get_config_paths() -> List[Path]:
    """
    :return: The places a config file is looked for, in priority order.
    """
    paths = [Path.cwd() / "config.yaml"]

    xdg_config = os.environ.get("XDG_CONFIG_HOME", "")
    if xdg_config:
        paths.append(Path(xdg_config) / "nxpresence" / "config.yaml")

    paths.append(Path.home() / ".config" / "nxpresence" / "config.yaml")
    return paths


def get_data_dir() -> Path:
    """
    :return: The default directory for the title list and the titledb cache.
    """
    xdg_data = os.environ.get("XDG_DATA_HOME", "")
    if xdg_data:
        return Path(xdg_data) / "nxpresence"

    return Path.home() / ".local" / "share" / "nxpresence"


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merges ``override`` into a copy of ``base``, recursing into nested dicts.

    :param base: The dict to start from. It is not modified.
    :param override: The values that take precedence.
    :return: The merged dict.
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Loads the configuration from the first readable config file.

    :param config_path: An explicit config file path. If None, the default locations are searched.
    :return: The configuration dict, with defaults filled in.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    paths = [config_path] if config_path else get_config_paths()

    for path in paths:
        if not path.exists():
            continue

        try:
            with open(path, "r", encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError):
            logger.warning("Failed to load config from %s", path, exc_info=True)
            continue

        if not isinstance(file_config, dict):
            logger.warning("Ignoring config %s: top level is not a mapping", path)
            continue

        logger.debug("Loaded config from %s", path)
        config = deep_merge(config, file_config)
        break

    return config


class Config(object):
    """
    Represents the loaded configuration, with typed accessors for each setting.
    """

    def __init__(self, config_path: Optional[Path] = None, *, data: Dict[str, Any] = None):
        """
        :param config_path: An explicit config file path. If None, the default locations are
            searched.
        :param data: A config dict to use instead of reading a file. Missing keys take their
            defaults.
        """
        if data is not None:
            self._config = deep_merge(copy.deepcopy(DEFAULT_CONFIG), data)
        else:
            self._config = load_config(config_path)

    def __getitem__(self, key: str) -> Any:
        return self._config[key]

    @property
    def device_host(self) -> str:
        return str(self._config["device"]["host"] or "")

    @property
    def device_port(self) -> int:
        return int(self._config["device"]["port"])

    @property
    def device_timeout(self) -> float:
        return float(self._config["device"]["timeout"])

    @property
    def poll_interval(self) -> float:
        return max(0.25, float(self._config["poll_interval"]))

    @property
    def client_id(self) -> str:
        return str(self._config["discord"]["client_id"] or "")

    @property
    def rpc_name(self) -> str:
        return str(self._config["discord"]["rpc_name"] or "")

    @property
    def state_text(self) -> str:
        return str(self._config["discord"]["state_text"] or "")

    @property
    def show_button(self) -> bool:
        return bool(self._config["discord"]["show_button"])

    @property
    def button_label(self) -> str:
        return str(self._config["discord"]["button_label"] or "")

    @property
    def button_url(self) -> str:
        return str(self._config["discord"]["button_url"] or "")

    @property
    def pack(self) -> str:
        return str(self._config["titledb"]["pack"] or "")

    @property
    def data_dir(self) -> Path:
        configured = self._config["titledb"]["data_dir"]
        return Path(configured).expanduser() if configured else get_data_dir()

    @property
    def titles_path(self) -> Path:
        """
        :return: The path of the local title list.
        """
        return self.data_dir / "DB" / "Titles.txt"

    @property
    def titledb_dir(self) -> Path:
        """
        :return: The directory holding raw packs and compiled caches.
        """
        return self.data_dir / "DB" / "titledb"

    @property
    def legacy_titles_path(self) -> Optional[Path]:
        configured = self._config["titledb"]["legacy_titles"]
        return Path(configured).expanduser() if configured else None
