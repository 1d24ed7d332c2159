import shutil
import threading
import time
from datetime import datetime, timedelta

import pytest
from PIL import Image

from pclapse.errors import EncodeFailed, InvalidAppendOrder
from pclapse.models import ExportOutcome, FrameGroup, StillImage

HAVE_FFMPEG = shutil.which("ffmpeg") is not None

requires_ffmpeg = pytest.mark.skipif(not HAVE_FFMPEG, reason="requires ffmpeg on PATH")

START = datetime(2025, 10, 5, 8, 0, 0)


def make_stills(n, size=(4, 4), color=(200, 40, 40), start=START, step=timedelta(seconds=5)):
    return [
        StillImage(timestamp=start + i * step, pixel_source=Image.new("RGB", size, color), id=f"img{i:05d}")
        for i in range(n)
    ]


def make_group(n, **kwargs):
    return FrameGroup(START.date(), make_stills(n, **kwargs))


class RecordingSession:
    """In-memory stand-in for EncodeSession: checks order, records, releases."""

    def __init__(self, not_ready_polls=0, fail_after=None, on_append=None, append_error=None):
        self.not_ready_polls = not_ready_polls
        self.fail_after = fail_after
        self.on_append = on_append
        self.append_error = append_error
        self.state = "idle"
        self.pts = []
        self.shapes = []
        self.ready_checks = 0
        self.waits = 0
        self.abort_calls = []
        self.finish_calls = 0
        self.error = None
        self._pending_not_ready = not_ready_polls
        self.destination = None
        self.frame_duration = None

    def start(self, destination, canvas, frame_duration):
        self.state = "writing"
        self.destination = destination
        self.frame_duration = frame_duration

    def is_ready_for_next_frame(self):
        self.ready_checks += 1
        if self.error is not None:
            return False
        if self._pending_not_ready > 0:
            self._pending_not_ready -= 1
            return False
        return True

    def wait_until_ready(self, timeout=None):
        self.waits += 1
        return self.error is None

    def raise_if_failed(self):
        if self.error is not None:
            raise EncodeFailed(self.error)

    def append(self, frame):
        if self.append_error is not None:
            raise self.append_error
        if self.state != "writing":
            raise InvalidAppendOrder("not writing")
        if self.pts and frame.presentation_time <= self.pts[-1]:
            raise InvalidAppendOrder("out of order")
        self.pts.append(frame.presentation_time)
        self.shapes.append(frame.pixels.shape)
        self._consume(frame)
        self._pending_not_ready = self.not_ready_polls
        if self.fail_after is not None and len(self.pts) >= self.fail_after:
            self.error = "writer died"
        if self.on_append is not None:
            self.on_append(len(self.pts))
        return True

    def _consume(self, frame):
        frame.release()

    def finish(self):
        self.finish_calls += 1
        self.state = "completed"
        return ExportOutcome.completed(len(self.pts), self.frame_duration, self.destination)

    def abort(self, reason=None):
        self.abort_calls.append(reason)
        self.state = "failed" if reason else "cancelled"


class ThreadedSession(RecordingSession):
    """Releases frames from a background thread, like the real writer."""

    def __init__(self, delay=0.0, **kwargs):
        super().__init__(**kwargs)
        self.delay = delay
        self._idle = threading.Event()
        self._idle.set()
        self._threads = []

    def is_ready_for_next_frame(self):
        return self._idle.is_set() and super().is_ready_for_next_frame()

    def wait_until_ready(self, timeout=None):
        self.waits += 1
        return self._idle.wait(timeout)

    def _consume(self, frame):
        self._idle.clear()

        def work():
            if self.delay:
                time.sleep(self.delay)
            frame.release()
            self._idle.set()

        t = threading.Thread(target=work, daemon=True)
        self._threads.append(t)
        t.start()

    def join(self):
        for t in self._threads:
            t.join()


@pytest.fixture
def recording_session():
    return RecordingSession()
