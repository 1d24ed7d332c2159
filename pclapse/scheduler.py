# scheduler.py
import threading
import time

import psutil

from .utils import get_logger

logger = get_logger()


class InFlightPermit:
    """
    Counting permit bounding how many composed frames may exist before the
    encoder has consumed them. Capacity 1 means a single-frame pipeline.
    """
    def __init__(self, capacity=1):
        self.capacity = capacity
        self._sem = threading.BoundedSemaphore(capacity)
        self._lock = threading.Lock()
        self.held = 0
        self.peak_held = 0

    def acquire(self, timeout=None):
        if not self._sem.acquire(timeout=timeout):
            return False
        with self._lock:
            self.held += 1
            self.peak_held = max(self.peak_held, self.held)
        return True

    def release(self):
        with self._lock:
            self.held -= 1
        self._sem.release()

    @property
    def available(self):
        return self.capacity - self.held


class DispatcherThrottle:
    """
    Simple dispatcher throttle: before composing a frame, call wait_for_capacity().
    Keeps CPU usage below max_cpu_percent (e.g., 90.0 => leaves ~10% free).
    """
    def __init__(self, max_cpu_percent=90.0, check_interval=0.3):
        self.max_cpu = float(max_cpu_percent)
        self.check_interval = float(check_interval)

    def wait_for_capacity(self, stop_event=None):
        while stop_event is None or not stop_event.is_set():
            cpu = psutil.cpu_percent(interval=self.check_interval)
            if cpu < self.max_cpu:
                return
            logger.debug("CPU %.1f%% >= %.1f%%, holding next frame", cpu, self.max_cpu)
            time.sleep(0.05)


class ExportController:
    """
    Cooperative control of a running export.
    The feeder checks it between frames: cancel() stops at the next safe
    point, pause() holds before the next frame until resume().
    """
    def __init__(self):
        self.cancel_event = threading.Event()
        self._running = threading.Event()
        self._running.set()

    def cancel(self):
        logger.info("Export cancellation requested.")
        self.cancel_event.set()
        # wake a paused feeder so it can observe the cancel
        self._running.set()

    @property
    def cancelled(self):
        return self.cancel_event.is_set()

    def pause(self):
        logger.info("Pausing export.")
        self._running.clear()

    def resume(self):
        logger.info("Resuming export.")
        self._running.set()

    @property
    def paused(self):
        return not self._running.is_set()

    def wait_while_paused(self, timeout=None):
        return self._running.wait(timeout)
