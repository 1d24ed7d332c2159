# settings.py
"""User settings persisted as a small JSON file."""
import json
import math
import os
from dataclasses import asdict, dataclass, fields

from . import config
from .capture import clamp_interval
from .io_utils import ensure_dir
from .utils import get_logger

logger = get_logger()


def _seconds(value, default):
    # bool is an int subclass; "true" is not a duration
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        logger.warning("Ignoring non-numeric setting %r, using %s", value, default)
        return default
    if not math.isfinite(value) or value <= 0:
        return default
    return float(value)


@dataclass
class Settings:
    capture_interval: float = config.CAPTURE_INTERVAL
    frame_duration: float = config.DEFAULT_FRAME_DURATION
    show_timestamp: bool = False
    screenshot_dir: str = config.SCREENSHOT_DIR

    def set_capture_interval(self, interval):
        self.capture_interval = clamp_interval(interval)

    @classmethod
    def load(cls, path=None):
        path = path or config.SETTINGS_FILE
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return cls()
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable settings %s: %s", path, e)
            return cls()
        if not isinstance(raw, dict):
            logger.warning("Ignoring malformed settings %s", path)
            return cls()
        known = {f.name for f in fields(cls)}
        s = cls(**{k: v for k, v in raw.items() if k in known})
        s.set_capture_interval(_seconds(s.capture_interval, config.CAPTURE_INTERVAL))
        s.frame_duration = _seconds(s.frame_duration, config.DEFAULT_FRAME_DURATION)
        if not isinstance(s.show_timestamp, bool):
            s.show_timestamp = False
        if not isinstance(s.screenshot_dir, str) or not s.screenshot_dir:
            s.screenshot_dir = config.SCREENSHOT_DIR
        return s

    def save(self, path=None):
        path = path or config.SETTINGS_FILE
        ensure_dir(os.path.dirname(os.path.abspath(path)))
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=2)
        os.replace(tmp, path)
