"""Value types passed between the catalog, the pipeline and its callers."""
import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Tuple

from . import config


@dataclass(frozen=True)
class StillImage:
    """One captured still.

    ``pixel_source`` is anything Pillow can decode: a path, encoded bytes or
    an already opened ``PIL.Image.Image``. It is only read, never modified.
    """
    timestamp: datetime
    pixel_source: Any
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


class FrameGroup:
    """Stills sharing one group key, in no particular order."""

    def __init__(self, key, images=()):
        self.key = key
        self.images = list(images)

    def __len__(self):
        return len(self.images)

    def __iter__(self):
        return iter(self.images)

    def __repr__(self):
        return f"FrameGroup(key={self.key!r}, images={len(self.images)})"

    def add(self, image):
        self.images.append(image)

    def sorted_images(self):
        # sorted() is stable: equal timestamps keep insertion order
        return sorted(self.images, key=lambda s: s.timestamp)


@dataclass(frozen=True)
class CanvasSpec:
    width: int = config.CANVAS_WIDTH
    height: int = config.CANVAS_HEIGHT
    pixel_format: str = config.PIXEL_FORMAT

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"canvas size must be positive, got {self.width}x{self.height}")
        if self.pixel_format != "bgra":
            raise ValueError(f"unsupported pixel format: {self.pixel_format}")

    @property
    def shape(self) -> Tuple[int, int, int]:
        return (self.height, self.width, 4)

    @property
    def frame_size(self) -> int:
        return self.width * self.height * 4


class CompositedFrame:
    """A canvas-sized BGRA buffer scheduled at ``presentation_time``.

    ``release()`` hands the buffer back and frees the in-flight permit. The
    feeder owns the frame until the encode session accepts it; after that the
    session releases it once the bytes are written.
    """

    def __init__(self, index, presentation_time, pixels, on_release=None):
        self.index = index
        self.presentation_time = presentation_time
        self.pixels = pixels
        self._on_release = on_release
        self.released = False

    def release(self):
        if self.released:
            return
        self.released = True
        cb, self._on_release = self._on_release, None
        pixels, self.pixels = self.pixels, None
        if cb is not None:
            cb(pixels)

    def __repr__(self):
        return f"CompositedFrame(index={self.index}, pts={self.presentation_time:.3f})"


@dataclass(frozen=True)
class ExportRequest:
    frames: FrameGroup
    destination: str
    show_timestamp: bool = False
    frame_duration: float = config.DEFAULT_FRAME_DURATION


class ExportStatus(enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ExportOutcome:
    status: ExportStatus
    reason: Optional[str] = None
    frames_appended: int = 0
    frame_duration: float = 0.0
    destination: Optional[str] = None

    @classmethod
    def completed(cls, frames_appended, frame_duration, destination):
        return cls(ExportStatus.COMPLETED, None, frames_appended, frame_duration, destination)

    @classmethod
    def failed(cls, reason, frames_appended=0, frame_duration=0.0, destination=None):
        return cls(ExportStatus.FAILED, reason, frames_appended, frame_duration, destination)

    @classmethod
    def cancelled(cls, frames_appended=0, frame_duration=0.0, destination=None):
        return cls(ExportStatus.CANCELLED, None, frames_appended, frame_duration, destination)

    @property
    def ok(self):
        return self.status is ExportStatus.COMPLETED

    @property
    def duration(self):
        return self.frames_appended * self.frame_duration

    def __str__(self):
        if self.status is ExportStatus.FAILED:
            return f"failed: {self.reason}"
        return self.status.value
