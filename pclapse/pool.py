# pool.py
import threading

import numpy as np

from .errors import AllocationFailed
from .utils import vprint


class FrameBufferPool:
    """
    Fixed-format BGRA buffers for one export session.
    Buffers are C-contiguous (stride = width * 4) so ffmpeg can read them
    straight from memory via the buffer protocol, no intermediate copy.
    Released buffers are kept and handed out again.
    """
    def __init__(self, spec, max_free=2):
        self.spec = spec
        self.max_free = max_free
        self._free = []
        self._lock = threading.Lock()
        self.outstanding = 0
        self.peak_outstanding = 0
        self.allocations = 0

    def allocate(self):
        with self._lock:
            buf = self._free.pop() if self._free else None
            if buf is None:
                try:
                    buf = np.empty(self.spec.shape, dtype=np.uint8)
                except MemoryError as e:
                    raise AllocationFailed(
                        f"cannot allocate {self.spec.width}x{self.spec.height} frame buffer") from e
                self.allocations += 1
                vprint("Allocated frame buffer", self.allocations)
            self.outstanding += 1
            self.peak_outstanding = max(self.peak_outstanding, self.outstanding)
            return buf

    def release(self, buf):
        if buf is None:
            return
        if buf.shape != self.spec.shape:
            raise ValueError(f"buffer {buf.shape} does not belong to this pool")
        with self._lock:
            self.outstanding -= 1
            if len(self._free) < self.max_free:
                self._free.append(buf)

    def clear(self):
        with self._lock:
            self._free.clear()
