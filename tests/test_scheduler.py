import threading

from pclapse import scheduler
from pclapse.scheduler import DispatcherThrottle, ExportController, InFlightPermit


def test_permit_is_exclusive():
    permit = InFlightPermit(1)
    assert permit.acquire(timeout=0.1)
    assert not permit.acquire(timeout=0.05)
    assert permit.available == 0
    permit.release()
    assert permit.available == 1
    assert permit.peak_held == 1


def test_permit_released_from_other_thread_unblocks():
    permit = InFlightPermit(1)
    permit.acquire()
    t = threading.Timer(0.05, permit.release)
    t.start()
    assert permit.acquire(timeout=2.0)
    permit.release()
    t.join()


def test_controller_cancel_wakes_paused_waiter():
    ctl = ExportController()
    ctl.pause()
    assert ctl.paused
    assert not ctl.wait_while_paused(0.01)
    ctl.cancel()
    assert ctl.cancelled
    assert ctl.wait_while_paused(0.01)


def test_controller_resume():
    ctl = ExportController()
    ctl.pause()
    ctl.resume()
    assert not ctl.paused
    assert not ctl.cancelled


def test_throttle_waits_until_cpu_drops(monkeypatch):
    readings = iter([99.0, 97.0, 40.0])
    calls = []

    def fake_cpu_percent(interval=None):
        calls.append(interval)
        return next(readings)

    monkeypatch.setattr(scheduler.psutil, "cpu_percent", fake_cpu_percent)
    monkeypatch.setattr(scheduler.time, "sleep", lambda s: None)
    DispatcherThrottle(max_cpu_percent=90.0, check_interval=0.01).wait_for_capacity()
    assert len(calls) == 3


def test_throttle_gives_up_when_stopped(monkeypatch):
    monkeypatch.setattr(scheduler.psutil, "cpu_percent", lambda interval=None: 100.0)
    stop = threading.Event()
    stop.set()
    DispatcherThrottle(max_cpu_percent=50.0).wait_for_capacity(stop)
