# encoder.py
"""
Encode session: one ffmpeg process, one H.264 track, raw BGRA frames on stdin.

States: IDLE -> WRITING -> COMPLETED | FAILED | CANCELLED.
A dedicated writer thread pushes frames into ffmpeg's stdin; the session is
"ready" whenever that thread is idle. Any outcome other than COMPLETED leaves
no file at the destination.
"""
import enum
import os
import queue
import subprocess
import threading
from fractions import Fraction

from . import config
from .errors import EncodeFailed, InvalidAppendOrder, WriterStartFailed
from .io_utils import is_writable_dir, register_partial_path, remove_file, unregister_partial_path
from .models import ExportOutcome
from .utils import get_logger, vprint

logger = get_logger()

_STOP = object()


class SessionState(enum.Enum):
    IDLE = "idle"
    WRITING = "writing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = (SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED)


def frame_rate_for(frame_duration):
    """Exact frame rate (frames per second) for a per-frame duration in seconds."""
    duration = Fraction(frame_duration).limit_denominator(1_000_000)
    if duration <= 0:
        raise ValueError(f"frame duration {frame_duration!r} rounds to zero")
    return 1 / duration


def build_ffmpeg_cmd(destination, canvas, frame_duration, ffmpeg_bin=None,
                     preset=config.FFMPEG_PRESET, bitrate=config.VIDEO_BITRATE):
    rate = frame_rate_for(frame_duration)
    return [
        ffmpeg_bin or config.FFMPEG_BIN, "-y", "-hide_banner", "-loglevel", "error",
        "-f", "rawvideo", "-pix_fmt", canvas.pixel_format,
        "-s", f"{canvas.width}x{canvas.height}",
        "-framerate", f"{rate.numerator}/{rate.denominator}",
        "-i", "-",
        "-an",
        "-c:v", "libx264", "-preset", preset, "-profile:v", "high",
        "-b:v", str(bitrate), "-g", str(config.KEYFRAME_INTERVAL),
        "-pix_fmt", "yuv420p",
        "-movflags", "+faststart",
        "-f", "mp4", destination,
    ]


class EncodeSession:
    def __init__(self, ffmpeg_bin=None, preset=config.FFMPEG_PRESET, bitrate=config.VIDEO_BITRATE):
        self.ffmpeg_bin = ffmpeg_bin or config.FFMPEG_BIN
        self.preset = preset
        self.bitrate = bitrate
        self.state = SessionState.IDLE
        self.destination = None
        self.canvas = None
        self.frame_duration = None
        self.frames_appended = 0
        self.frames_written = 0
        self.outcome = None
        self._proc = None
        self._writer = None
        self._stderr_thread = None
        self._stderr_tail = bytearray()
        self._slot = queue.Queue(maxsize=1)
        self._cond = threading.Condition()
        self._busy = False
        self._error = None
        self._last_pts = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.state is SessionState.WRITING:
            self.abort(str(exc) if exc is not None else None)
        return False

    # lifecycle -------------------------------------------------------------

    def start(self, destination, canvas, frame_duration):
        if self.state is not SessionState.IDLE:
            raise InvalidAppendOrder(f"session already {self.state.value}")
        try:
            if not frame_duration > 0:
                raise ValueError("must be positive")
            frame_rate_for(frame_duration)
        except (ArithmeticError, TypeError, ValueError) as e:
            raise WriterStartFailed(f"unusable frame duration {frame_duration!r}: {e}") from e
        if canvas.width % 2 or canvas.height % 2:
            raise WriterStartFailed(f"yuv420p output needs even dimensions, got {canvas.width}x{canvas.height}")
        destination = os.path.abspath(destination)
        parent = os.path.dirname(destination)
        if not is_writable_dir(parent):
            raise WriterStartFailed(f"destination directory is not writable: {parent}")
        if os.path.isdir(destination):
            raise WriterStartFailed(f"destination is a directory: {destination}")
        try:
            if remove_file(destination):
                logger.info("Removed previous output %s", destination)
        except OSError as e:
            raise WriterStartFailed(f"cannot replace {destination}: {e}") from e

        cmd = build_ffmpeg_cmd(destination, canvas, frame_duration, self.ffmpeg_bin, self.preset, self.bitrate)
        vprint("ffmpeg command:", " ".join(cmd))
        try:
            # own process group: a terminal Ctrl-C must not kill the encoder mid-file
            self._proc = subprocess.Popen(
                cmd, stdin=subprocess.PIPE, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE,
                start_new_session=(os.name == "posix"),
            )
        except OSError as e:
            raise WriterStartFailed(f"cannot launch {cmd[0]}: {e}") from e

        self.destination = destination
        self.canvas = canvas
        self.frame_duration = frame_duration
        register_partial_path(destination)
        self._stderr_thread = threading.Thread(target=self._drain_stderr, name="ffmpeg-stderr", daemon=True)
        self._stderr_thread.start()
        self._writer = threading.Thread(target=self._writer_loop, name="ffmpeg-writer", daemon=True)
        self._writer.start()
        self.state = SessionState.WRITING
        logger.info("Encode session started: %s (%dx%d, %.3fs/frame)",
                    destination, canvas.width, canvas.height, frame_duration)

    def is_ready_for_next_frame(self):
        with self._cond:
            return (self.state is SessionState.WRITING and not self._busy
                    and self._error is None and self._proc.poll() is None)

    def wait_until_ready(self, timeout=None):
        """Block until the writer is idle, the session failed, or timeout."""
        with self._cond:
            self._cond.wait_for(
                lambda: not self._busy or self._error is not None or self.state is not SessionState.WRITING,
                timeout,
            )
        return self.is_ready_for_next_frame()

    def raise_if_failed(self):
        if self.state is SessionState.WRITING and self._error is None and self._proc.poll() is not None:
            self._fail(f"ffmpeg exited unexpectedly with code {self._proc.returncode}{self._stderr_suffix()}")
        if self._error is not None:
            raise EncodeFailed(self._error)

    def append(self, frame):
        """Hand ``frame`` to the writer thread; the session releases it once written."""
        with self._cond:
            if self.state is not SessionState.WRITING:
                raise InvalidAppendOrder(f"cannot append while session is {self.state.value}")
            if self._error is not None:
                raise EncodeFailed(self._error)
            if self._busy:
                raise InvalidAppendOrder("encoder is not ready for the next frame")
            pts = frame.presentation_time
            if self._last_pts is not None and pts <= self._last_pts:
                raise InvalidAppendOrder(
                    f"presentation time {pts:.6f}s is not after previous {self._last_pts:.6f}s")
            if frame.pixels is None or frame.pixels.shape != self.canvas.shape:
                raise EncodeFailed(f"frame {frame.index} does not match canvas {self.canvas.shape}")
            self._busy = True
            self._last_pts = pts
            self.frames_appended += 1
        self._slot.put(frame)
        return True

    def finish(self):
        if self.state is SessionState.IDLE:
            self.state = SessionState.FAILED
            self.outcome = ExportOutcome.failed("session was never started")
            return self.outcome
        if self.state in TERMINAL_STATES:
            return self.outcome

        self._slot.put(_STOP)
        self._writer.join()
        try:
            self._proc.stdin.close()
        except OSError as e:
            self._fail(f"closing encoder input failed: {e}")
        rc = self._proc.wait()
        self._stderr_thread.join(timeout=5.0)

        reason = None
        if self._error is not None:
            reason = self._error
        elif self.frames_written == 0:
            reason = "no frames were appended"
        elif rc != 0:
            reason = f"ffmpeg exited with code {rc}{self._stderr_suffix()}"

        if reason is not None:
            logger.error("Encoding failed for %s: %s", self.destination, reason)
            self._discard_output()
            self.state = SessionState.FAILED
            self.outcome = ExportOutcome.failed(reason, self.frames_written, self.frame_duration, self.destination)
        else:
            unregister_partial_path(self.destination)
            self.state = SessionState.COMPLETED
            self.outcome = ExportOutcome.completed(self.frames_written, self.frame_duration, self.destination)
            logger.info("Encoded %d frames into %s", self.frames_written, self.destination)
        with self._cond:
            self._cond.notify_all()
        return self.outcome

    def abort(self, reason=None):
        """Stop encoding and delete the partial file."""
        if self.state in TERMINAL_STATES:
            return
        if self.state is SessionState.WRITING:
            logger.warning("Aborting encode session for %s%s", self.destination, f": {reason}" if reason else "")
            self._proc.kill()
            self._slot.put(_STOP)
            self._writer.join()
            try:
                self._proc.stdin.close()
            except OSError as e:
                logger.debug("stdin close after kill: %s", e)
            self._proc.wait()
            self._stderr_thread.join(timeout=5.0)
            self._discard_output()
        if reason is None:
            self.state = SessionState.CANCELLED
            self.outcome = ExportOutcome.cancelled(self.frames_written, self.frame_duration or 0.0, self.destination)
        else:
            self.state = SessionState.FAILED
            self.outcome = ExportOutcome.failed(reason, self.frames_written, self.frame_duration or 0.0,
                                                self.destination)
        with self._cond:
            self._cond.notify_all()

    # internals -------------------------------------------------------------

    def _writer_loop(self):
        while True:
            frame = self._slot.get()
            if frame is _STOP:
                return
            try:
                if self._error is None:
                    self._proc.stdin.write(frame.pixels.reshape(-1).data)
                    self.frames_written += 1
            except (BrokenPipeError, OSError, ValueError) as e:
                self._fail(f"encoder stopped accepting frames: {e}{self._stderr_suffix()}")
            finally:
                frame.release()
                with self._cond:
                    self._busy = False
                    self._cond.notify_all()

    def _drain_stderr(self):
        # keep reading so ffmpeg never blocks on a full pipe
        for chunk in iter(lambda: self._proc.stderr.read(1024), b""):
            self._stderr_tail.extend(chunk)
            del self._stderr_tail[:-config.STDERR_TAIL_BYTES]

    def _stderr_suffix(self):
        text = bytes(self._stderr_tail).decode("utf-8", "replace").strip()
        return f" ({text.splitlines()[-1]})" if text else ""

    def _fail(self, reason):
        with self._cond:
            if self._error is None:
                self._error = reason
                logger.error("Encode session failure: %s", reason)
            self._cond.notify_all()

    def _discard_output(self):
        try:
            if remove_file(self.destination):
                logger.info("Removed partial output %s", self.destination)
        except OSError as e:
            logger.exception("Failed to remove partial output %s: %s", self.destination, e)
        unregister_partial_path(self.destination)
