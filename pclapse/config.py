# Configuration constants (tweak as needed)
import os

CANVAS_WIDTH = 1920
CANVAS_HEIGHT = 1080
PIXEL_FORMAT = "bgra"            # ffmpeg rawvideo name, 4 bytes per pixel
DEFAULT_FRAME_DURATION = 0.2     # seconds each still stays on screen
VIDEO_BITRATE = 10_000_000
KEYFRAME_INTERVAL = 1            # every frame is a keyframe, less flicker
FFMPEG_PRESET = "medium"
FFMPEG_BIN = os.environ.get("PCLAPSE_FFMPEG", "ffmpeg")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
TIMESTAMP_FONT = "DejaVuSans.ttf"
TIMESTAMP_FONT_SIZE = 32
TIMESTAMP_MARGIN = 20
TIMESTAMP_PAD_X = 10
TIMESTAMP_PAD_Y = 5
TIMESTAMP_BG_ALPHA = 128         # ~50% opaque black

READY_POLL_INTERVAL = 0.1
STDERR_TAIL_BYTES = 4096

SCREENSHOT_DIR = os.path.join(os.path.expanduser("~"), ".pclapse", "screenshots")
SCREENSHOT_PREFIX = "Screenshot_"
SCREENSHOT_TIME_FORMAT = "%Y-%m-%d_%H-%M-%S"
CAPTURE_INTERVAL = 1.0
MIN_CAPTURE_INTERVAL = 0.1
MAX_CAPTURE_INTERVAL = 60.0

SETTINGS_FILE = os.path.join(os.path.expanduser("~"), ".pclapse", "settings.json")
LOG_FILE = "timelapse.log"
VERBOSE = False
