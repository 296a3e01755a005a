from pathlib import Path

from nxpresence.core.config import Config, DEFAULT_CONFIG, deep_merge, load_config


def test_defaults_without_file(tmp_path):
    config = load_config(tmp_path / "missing.yaml")

    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG


def test_file_is_merged_over_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "device:\n  host: 10.0.0.2\npoll_interval: 5\ntitledb:\n  pack: US.en.json\n",
        encoding="utf-8",
    )

    config = Config(path)

    assert config.device_host == "10.0.0.2"
    assert config.device_port == 51234
    assert config.poll_interval == 5.0
    assert config.pack == "US.en.json"


def test_invalid_yaml_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("device: [unclosed\n", encoding="utf-8")

    assert load_config(path) == DEFAULT_CONFIG


def test_non_mapping_yaml_is_ignored(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    assert load_config(path) == DEFAULT_CONFIG


def test_paths_derive_from_data_dir(tmp_path):
    config = Config(data={"titledb": {"data_dir": str(tmp_path)}})

    assert config.titles_path == tmp_path / "DB" / "Titles.txt"
    assert config.titledb_dir == tmp_path / "DB" / "titledb"
    assert config.legacy_titles_path is None


def test_deep_merge_does_not_touch_base():
    base = {"a": {"b": 1, "c": 2}}

    assert deep_merge(base, {"a": {"b": 3}}) == {"a": {"b": 3, "c": 2}}
    assert base == {"a": {"b": 1, "c": 2}}


def test_poll_interval_has_a_floor():
    assert Config(data={"poll_interval": 0}).poll_interval == 0.25


def test_default_data_dir_is_absolute():
    assert isinstance(Config(data={}).data_dir, Path)
    assert Config(data={}).data_dir.is_absolute()
