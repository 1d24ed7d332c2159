import json

from pclapse import config
from pclapse.settings import Settings


def test_missing_file_gives_defaults(tmp_path):
    s = Settings.load(str(tmp_path / "settings.json"))
    assert s == Settings()
    assert s.frame_duration == config.DEFAULT_FRAME_DURATION


def test_round_trip(tmp_path):
    path = str(tmp_path / "cfg" / "settings.json")
    Settings(capture_interval=2.5, frame_duration=0.1, show_timestamp=True, screenshot_dir="/x").save(path)
    s = Settings.load(path)
    assert s.capture_interval == 2.5
    assert s.show_timestamp is True
    assert s.screenshot_dir == "/x"


def test_load_clamps_and_ignores_unknown_keys(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"capture_interval": 500, "frame_duration": -1, "theme": "dark"}))
    s = Settings.load(str(path))
    assert s.capture_interval == config.MAX_CAPTURE_INTERVAL
    assert s.frame_duration == config.DEFAULT_FRAME_DURATION


def test_corrupt_file_gives_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json")
    assert Settings.load(str(path)) == Settings()


def test_set_capture_interval_clamps():
    s = Settings()
    s.set_capture_interval(0)
    assert s.capture_interval == config.MIN_CAPTURE_INTERVAL


def test_wrong_types_fall_back_to_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({
        "capture_interval": "fast",
        "frame_duration": "0.5",
        "show_timestamp": "yes",
        "screenshot_dir": 7,
    }))
    s = Settings.load(str(path))
    assert s == Settings()


def test_non_object_file_gives_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("[1, 2, 3]")
    assert Settings.load(str(path)) == Settings()
