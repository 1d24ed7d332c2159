# catalog.py
"""
Screenshot catalog: a flat folder of Screenshot_YYYY-MM-DD_HH-MM-SS.png files
grouped by calendar day.
"""
import os
import re
from datetime import date, datetime, timedelta

from . import config
from .io_utils import ensure_dir, list_png_files, remove_file
from .models import FrameGroup, StillImage
from .utils import get_logger, vprint

logger = get_logger()

_NAME_RE = re.compile(
    re.escape(config.SCREENSHOT_PREFIX) + r"(\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2})(?:_(\d+))?\.png$",
    re.IGNORECASE,
)


def parse_timestamp(path):
    """Capture time from the file name, falling back to the file's mtime."""
    m = _NAME_RE.match(os.path.basename(path))
    if m:
        try:
            return datetime.strptime(m.group(1), config.SCREENSHOT_TIME_FORMAT)
        except ValueError:
            vprint("Unparseable screenshot name:", path)
    return datetime.fromtimestamp(os.path.getmtime(path))


def group_title(day, today=None):
    today = today or date.today()
    if day == today:
        return "Today"
    if day == today - timedelta(days=1):
        return "Yesterday"
    month_day = f"{day.strftime('%B')} {day.day}"
    if day.year == today.year:
        return month_day
    return f"{month_day}, {day.year}"


def default_export_name(group, today=None):
    return f"Timelapse-{group_title(group.key, today)}.mp4"


class ScreenshotCatalog:
    def __init__(self, directory=None):
        self.directory = directory or config.SCREENSHOT_DIR
        ensure_dir(self.directory)

    def stills(self):
        out = []
        for path in list_png_files(self.directory):
            try:
                ts = parse_timestamp(path)
            except OSError as e:
                # file vanished between listing and stat
                logger.warning("Skipping %s: %s", path, e)
                continue
            out.append(StillImage(timestamp=ts, pixel_source=path, id=os.path.basename(path)))
        return out

    def groups(self):
        """Day groups, newest day first; each group newest still first."""
        by_day = {}
        for still in self.stills():
            by_day.setdefault(still.timestamp.date(), []).append(still)
        groups = []
        for day in sorted(by_day, reverse=True):
            stills = sorted(by_day[day], key=lambda s: s.timestamp, reverse=True)
            groups.append(FrameGroup(day, stills))
        return groups

    def group_for(self, day):
        for group in self.groups():
            if group.key == day:
                return group
        return None

    def save_image(self, image, when=None):
        """Store a captured PIL image and return its StillImage."""
        when = (when or datetime.now()).replace(microsecond=0)
        ensure_dir(self.directory)
        stem = config.SCREENSHOT_PREFIX + when.strftime(config.SCREENSHOT_TIME_FORMAT)
        path = os.path.join(self.directory, stem + ".png")
        n = 0
        while os.path.exists(path):
            n += 1
            path = os.path.join(self.directory, f"{stem}_{n}.png")
        image.save(path, "PNG")
        logger.info("Screenshot saved to %s", path)
        return StillImage(timestamp=when, pixel_source=path, id=os.path.basename(path))

    def delete(self, still):
        if remove_file(still.pixel_source):
            logger.info("Deleted screenshot %s", still.pixel_source)
            return True
        return False
