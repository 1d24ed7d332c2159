# capture.py
import threading

from . import config
from .utils import get_logger

logger = get_logger()


def clamp_interval(interval):
    return max(config.MIN_CAPTURE_INTERVAL, min(float(interval), config.MAX_CAPTURE_INTERVAL))


class CaptureScheduler:
    """
    Background thread: every `interval` seconds ask the capture source for a
    preview image and store it in the catalog.
    `source` is any callable returning a PIL image, or None when no preview
    is available yet (that tick is skipped).
    """
    def __init__(self, source, catalog, interval=config.CAPTURE_INTERVAL):
        self.source = source
        self.catalog = catalog
        self.interval = clamp_interval(interval)
        self.captured = 0
        self._stop_event = threading.Event()
        self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="capture-timer", daemon=True)
        self._thread.start()
        logger.info("Capture timer started (every %.1fs).", self.interval)

    def stop(self):
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=self.interval + 1.0)
        self._thread = None
        logger.info("Capture timer stopped after %d captures.", self.captured)

    def set_interval(self, interval):
        was_running = self.running
        if was_running:
            self.stop()
        self.interval = clamp_interval(interval)
        if was_running:
            self.start()

    def capture_once(self):
        image = self.source()
        if image is None:
            logger.info("No preview image available")
            return None
        still = self.catalog.save_image(image)
        self.captured += 1
        return still

    def _run(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.capture_once()
            except OSError as e:
                # disk full / folder removed: keep the timer alive, try next tick
                logger.exception("Failed to save screenshot: %s", e)
