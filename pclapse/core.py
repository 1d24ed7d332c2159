# core.py
"""
Export orchestration. run_export() turns one ExportRequest into exactly one
ExportOutcome: validate, sort, start the encode session, feed it, then
finish or abort.
"""
import math
import os
import time

from .encoder import EncodeSession
from .errors import ExportCancelled, TimelapseError, WriterStartFailed
from .feeder import FailurePolicy, PacedFrameFeeder
from .io_utils import is_writable_dir
from .models import CanvasSpec, ExportOutcome
from .pool import FrameBufferPool
from .utils import get_logger

logger = get_logger()


def validate_request(request):
    """Return a human-readable problem with ``request``, or None if it is usable."""
    if request.frames is None or len(request.frames) == 0:
        return "no images to export"
    fd = request.frame_duration
    if not isinstance(fd, (int, float)) or not math.isfinite(fd) or fd <= 0:
        return f"frame duration must be a positive number of seconds, got {fd!r}"
    if not request.destination:
        return "no destination given"
    dest = os.path.abspath(request.destination)
    if os.path.isdir(dest):
        return f"destination is a directory: {dest}"
    parent = os.path.dirname(dest)
    if not is_writable_dir(parent):
        return f"destination directory is not writable: {parent}"
    return None


def run_export(request, canvas=None, progress=None, controller=None,
               policy=FailurePolicy.ABORT, throttle=None, session_factory=EncodeSession):
    canvas = canvas or CanvasSpec()
    dest = request.destination
    fd = request.frame_duration

    problem = validate_request(request)
    if problem is not None:
        logger.error("Rejected export to %s: %s", dest, problem)
        return ExportOutcome.failed(problem, destination=dest)

    images = request.frames.sorted_images()
    logger.info("Exporting %d stills of group %r to %s (timestamps=%s, %.3fs/frame)",
                len(images), request.frames.key, dest, request.show_timestamp, fd)
    started = time.monotonic()

    session = session_factory()
    try:
        session.start(dest, canvas, fd)
    except WriterStartFailed as e:
        logger.exception("Could not start encoder for %s: %s", dest, e)
        return ExportOutcome.failed(str(e), destination=dest)
    except Exception as e:
        logger.exception("Unexpected error while starting encoder for %s: %s", dest, e)
        session.abort(f"internal error: {e}")
        return ExportOutcome.failed(f"internal error: {e}", destination=dest)

    pool = FrameBufferPool(canvas)
    feeder = PacedFrameFeeder(
        session, pool, canvas, fd,
        show_timestamp=request.show_timestamp, policy=policy,
        controller=controller, progress=progress, throttle=throttle,
    )
    try:
        feeder.run(images)
    except (ExportCancelled, KeyboardInterrupt):
        session.abort()
        outcome = ExportOutcome.cancelled(feeder.frames_appended, fd, dest)
    except TimelapseError as e:
        logger.exception("Export to %s failed: %s", dest, e)
        session.abort(str(e))
        outcome = ExportOutcome.failed(str(e), feeder.frames_appended, fd, dest)
    except Exception as e:
        logger.exception("Unexpected error while exporting to %s: %s", dest, e)
        session.abort(f"internal error: {e}")
        outcome = ExportOutcome.failed(f"internal error: {e}", feeder.frames_appended, fd, dest)
    else:
        outcome = session.finish()
    finally:
        pool.clear()

    if feeder.skipped:
        logger.warning("%d stills were skipped: %s", len(feeder.skipped), ", ".join(feeder.skipped))
    logger.info("Export to %s %s after %.1fs (%d frames, peak buffers %d)",
                dest, outcome, time.monotonic() - started, outcome.frames_appended, pool.peak_outstanding)
    return outcome
