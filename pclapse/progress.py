# progress.py
import threading

from .utils import get_tqdm


class TqdmProgress:
    """
    (done, total) progress callback drawing a tqdm bar on the console.
    The bar is created lazily on the first report, when the total is known.
    """
    def __init__(self, desc="Export", unit="frame", disable=False):
        self.desc = desc
        self.unit = unit
        self.disable = disable
        self.bar = None
        self._lock = threading.Lock()

    def __call__(self, done, total):
        with self._lock:
            if self.bar is None:
                self.bar = get_tqdm(total=total, desc=self.desc, unit=self.unit, disable=self.disable)
            self.bar.update(done - self.bar.n)

    def close(self):
        with self._lock:
            if self.bar is not None:
                self.bar.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
