from nxpresence.dataclasses.activity import ActivityPayload
from nxpresence.dataclasses.device import DeviceState
from nxpresence.titles.ids import display_title_id, format_title_id, parse_title_id


def test_minimal_activity():
    activity = ActivityPayload(details="Game", state="Playing", start=10).to_dict()

    assert activity == {"details": "Game", "state": "Playing", "timestamps": {"start": 10}}


def test_assets_only_include_set_fields():
    payload = ActivityPayload("Game", "Playing", 10, small_text="Switch", large_image="  ")

    assert payload.assets == {"small_text": "Switch"}
    assert payload.to_dict()["assets"] == {"small_text": "Switch"}


def test_button_needs_label_and_url():
    assert ActivityPayload("d", "s", 0, button_label="GitHub").buttons is None
    assert ActivityPayload("d", "s", 0, button_url="https://x").buttons is None
    assert ActivityPayload("d", "s", 0, button_label="GitHub", button_url="https://x").buttons \
        == [{"label": "GitHub", "url": "https://x"}]


def test_name_is_optional():
    assert ActivityPayload("d", "s", 0, name="Switch").to_dict()["name"] == "Switch"
    assert "name" not in ActivityPayload("d", "s", 0, name=" ").to_dict()


def test_payloads_compare_by_value():
    assert ActivityPayload("d", "s", 0, large_image="i") == ActivityPayload("d", "s", 0,
                                                                            large_image="i")


def test_parse_title_id():
    assert parse_title_id("0100000000010000") == 0x0100000000010000
    assert parse_title_id(" 0x01007ef00011e000 ") == 0x01007EF00011E000
    assert parse_title_id("FFFFFFFFFFFFFFFF") == 2 ** 64 - 1
    assert parse_title_id("10000000000000000") is None
    assert parse_title_id("0x") is None
    assert parse_title_id("") is None
    assert parse_title_id("12 34") is None
    assert parse_title_id("-1") is None
    assert parse_title_id(None) is None


def test_format_title_id():
    assert format_title_id(0x1F) == "000000000000001F"
    assert display_title_id(0x0100000000010000) == "0x0100000000010000"


def test_device_state_from_json():
    state = DeviceState.from_json({
        "service": "SwitchDCActivity",
        "firmware": "18.1.0",
        "active_program_id": "0x0100000000010000",
        "active_game": "0x0100000000010000",
        "started_sec": 12,
        "last_update_sec": 40,
        "sample_count": 3,
    })

    assert state.active_program_id == 0x0100000000010000
    assert state.is_running_title
    assert state.started_sec == 12


def test_device_state_home_menu():
    state = DeviceState.from_json({"active_program_id": "0x0000000000000000",
                                   "active_game": "HOME"})

    assert state.active_program_id == 0
    assert not state.is_running_title


def test_device_state_rejects_garbage():
    assert DeviceState.from_json([]) is None
    assert DeviceState.from_json({"active_program_id": "nope"}) is None
    assert DeviceState.from_json({"active_program_id": True}) is None
    assert DeviceState.from_json({"active_program_id": -1}) is None
    assert DeviceState.from_json({"active_program_id": 1 << 64}) is None
