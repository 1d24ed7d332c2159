"""Failure taxonomy of the export pipeline.

Every fatal condition ends up as a single ``FAILED`` outcome whose reason is
``str(error)``; ``ExportCancelled`` only carries the cancel request out of the
feeder loop.
"""


class TimelapseError(Exception):
    """Base class for pipeline errors."""


class CompositionFailed(TimelapseError):
    """A source could not be decoded or composed onto the canvas."""

    def __init__(self, message, image_id=None):
        super().__init__(message)
        self.image_id = image_id


class AllocationFailed(TimelapseError):
    """A canvas buffer could not be allocated."""


class WriterStartFailed(TimelapseError):
    """The output container could not be opened."""


class InvalidAppendOrder(TimelapseError):
    """Append called while not ready, out of state, or out of order."""


class EncodeFailed(TimelapseError):
    """The encoder reported a failure mid-session or at finish."""


class ExportCancelled(TimelapseError):
    """Cancellation was requested between frames."""
