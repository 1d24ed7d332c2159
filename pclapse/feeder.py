# feeder.py
"""
Paced frame feeder.

Walks a frame group in timestamp order, composes each still into a pool
buffer and appends it to the encode session at ``i * frame_duration``.
A permit of capacity 1 keeps a single composed frame alive at a time: it is
taken before composing and given back only when the session has written the
frame (or the frame is discarded).
"""
import enum

from . import config
from .compositor import compose
from .errors import CompositionFailed, ExportCancelled
from .models import CompositedFrame
from .scheduler import InFlightPermit
from .utils import get_logger

logger = get_logger()


class FailurePolicy(enum.Enum):
    ABORT = "abort"     # first undecodable still fails the export
    SKIP = "skip"       # log it, leave it out, keep going


class PacedFrameFeeder:
    def __init__(self, session, pool, canvas, frame_duration, show_timestamp=False,
                 policy=FailurePolicy.ABORT, controller=None, progress=None,
                 throttle=None, permit=None, compositor=compose,
                 ready_poll_interval=config.READY_POLL_INTERVAL):
        self.session = session
        self.pool = pool
        self.canvas = canvas
        self.frame_duration = frame_duration
        self.show_timestamp = show_timestamp
        self.policy = policy
        self.controller = controller
        self.progress = progress
        self.throttle = throttle
        self.permit = permit or InFlightPermit(1)
        self.compositor = compositor
        self.ready_poll_interval = ready_poll_interval
        self.frames_appended = 0
        self.skipped = []

    def run(self, images):
        """Feed ``images`` (already sorted) to the session. Returns frames appended.

        Raises ExportCancelled, CompositionFailed (ABORT policy),
        AllocationFailed, EncodeFailed or InvalidAppendOrder; the caller owns
        the session and decides between finish() and abort().
        """
        total = len(images)
        for still in images:
            self._checkpoint()
            self._acquire_permit()
            try:
                frame = self._compose(still)
            except BaseException:
                self.permit.release()
                raise
            if frame is None:
                self.permit.release()
                self._report(self.frames_appended + len(self.skipped), total)
                continue
            # from here the frame carries the permit; release() returns both
            try:
                self._wait_until_ready()
                self.session.append(frame)
            except BaseException:
                frame.release()
                raise
            self.frames_appended += 1
            self._report(self.frames_appended + len(self.skipped), total)
        return self.frames_appended

    # steps -----------------------------------------------------------------

    def _checkpoint(self):
        ctl = self.controller
        if ctl is not None:
            while ctl.paused and not ctl.cancelled:
                ctl.wait_while_paused(self.ready_poll_interval)
            if ctl.cancelled:
                logger.info("Cancelled after %d frames", self.frames_appended)
                raise ExportCancelled(f"cancelled after {self.frames_appended} frames")
        if self.throttle is not None:
            self.throttle.wait_for_capacity(ctl.cancel_event if ctl is not None else None)

    def _acquire_permit(self):
        # the previous frame gives the permit back once the encoder wrote it
        while not self.permit.acquire(timeout=self.ready_poll_interval):
            self.session.raise_if_failed()

    def _compose(self, still):
        index = self.frames_appended
        buf = self.pool.allocate()
        try:
            stamp = still.timestamp if self.show_timestamp else None
            pixels = self.compositor(still.pixel_source, self.canvas, stamp, out=buf)
        except CompositionFailed as e:
            self.pool.release(buf)
            e.image_id = still.id
            if self.policy is FailurePolicy.SKIP:
                logger.warning("Skipping still %s (%s): %s", still.id, still.timestamp, e)
                self.skipped.append(still.id)
                return None
            logger.error("Composition failed for still %s (%s): %s", still.id, still.timestamp, e)
            raise
        except BaseException:
            self.pool.release(buf)
            raise

        def _release(pixels, _pool=self.pool, _permit=self.permit):
            _pool.release(pixels)
            _permit.release()

        return CompositedFrame(index, index * self.frame_duration, pixels, on_release=_release)

    def _wait_until_ready(self):
        while not self.session.is_ready_for_next_frame():
            self.session.raise_if_failed()
            self.session.wait_until_ready(self.ready_poll_interval)
        self.session.raise_if_failed()

    def _report(self, done, total):
        if self.progress is None:
            return
        try:
            self.progress(done, total)
        except Exception as e:
            # progress is advisory; a broken callback must not stop the export
            logger.exception("Progress callback failed: %s", e)

