from datetime import timedelta

import pytest

from pclapse.errors import CompositionFailed, EncodeFailed, ExportCancelled, InvalidAppendOrder
from pclapse.feeder import FailurePolicy, PacedFrameFeeder
from pclapse.models import CanvasSpec, FrameGroup, StillImage
from pclapse.pool import FrameBufferPool
from pclapse.scheduler import ExportController, InFlightPermit

from .conftest import START, RecordingSession, ThreadedSession, make_group, make_stills

TINY = CanvasSpec(2, 2)


def fill_compositor(source, canvas, timestamp=None, out=None):
    if source == "broken":
        raise CompositionFailed("cannot decode")
    out[...] = 0
    return out


def make_feeder(session, fd=0.2, **kwargs):
    kwargs.setdefault("compositor", fill_compositor)
    kwargs.setdefault("ready_poll_interval", 0.01)
    session.start(None, TINY, fd)
    return PacedFrameFeeder(session, FrameBufferPool(TINY), TINY, fd, **kwargs)


@pytest.mark.parametrize("n", [1, 2, 500])
def test_presentation_times_strictly_increase(n):
    session = RecordingSession()
    feeder = make_feeder(session, fd=0.2)
    assert feeder.run(make_stills(n)) == n
    assert session.pts == [pytest.approx(i * 0.2) for i in range(n)]
    assert all(b > a for a, b in zip(session.pts, session.pts[1:]))
    assert set(session.shapes) == {TINY.shape}


def test_group_sorting_is_stable_for_equal_timestamps():
    a = StillImage(START, "a", id="a")
    b = StillImage(START, "b", id="b")
    c = StillImage(START - timedelta(seconds=1), "c", id="c")
    seen = []

    def recording_compositor(source, canvas, timestamp=None, out=None):
        seen.append(source)
        return out

    group = FrameGroup(START.date(), [a, b, c])
    make_feeder(RecordingSession(), compositor=recording_compositor).run(group.sorted_images())
    assert seen == ["c", "a", "b"]


def test_waits_for_session_readiness():
    session = RecordingSession(not_ready_polls=2)
    make_feeder(session).run(make_stills(3))
    assert len(session.pts) == 3
    assert session.waits == 6


def test_timestamp_passed_only_when_requested():
    stamps = []

    def compositor(source, canvas, timestamp=None, out=None):
        stamps.append(timestamp)
        return out

    stills = make_stills(2)
    make_feeder(RecordingSession(), compositor=compositor).run(stills)
    make_feeder(RecordingSession(), compositor=compositor, show_timestamp=True).run(stills)
    assert stamps == [None, None, stills[0].timestamp, stills[1].timestamp]


def test_cancel_stops_between_frames():
    controller = ExportController()
    permit = InFlightPermit(1)

    def on_append(count):
        if count == 10:
            controller.cancel()

    session = RecordingSession(on_append=on_append)
    feeder = make_feeder(session, controller=controller, permit=permit)
    with pytest.raises(ExportCancelled):
        feeder.run(make_stills(1000))
    assert feeder.frames_appended == 10
    assert len(session.pts) == 10
    assert permit.available == 1
    assert feeder.pool.outstanding == 0


def test_single_frame_in_flight_over_long_run():
    session = ThreadedSession()
    permit = InFlightPermit(1)
    feeder = make_feeder(session, permit=permit)
    feeder.run(make_stills(5000, size=(1, 1)))
    session.join()
    assert len(session.pts) == 5000
    assert permit.peak_held == 1
    assert feeder.pool.peak_outstanding == 1
    assert feeder.pool.allocations == 1
    assert feeder.pool.outstanding == 0


def test_slow_writer_still_keeps_order():
    session = ThreadedSession(delay=0.005)
    feeder = make_feeder(session)
    feeder.run(make_stills(20))
    session.join()
    assert session.pts == sorted(session.pts)
    assert len(set(session.pts)) == 20


def test_abort_policy_raises_and_releases():
    stills = make_stills(3)
    stills[1] = StillImage(stills[1].timestamp, "broken", id="bad")
    permit = InFlightPermit(1)
    session = RecordingSession()
    feeder = make_feeder(session, permit=permit)
    with pytest.raises(CompositionFailed) as info:
        feeder.run(stills)
    assert info.value.image_id == "bad"
    assert len(session.pts) == 1
    assert permit.available == 1
    assert feeder.pool.outstanding == 0


def test_skip_policy_keeps_timeline_contiguous():
    stills = make_stills(4)
    stills[1] = StillImage(stills[1].timestamp, "broken", id="bad")
    session = RecordingSession()
    feeder = make_feeder(session, fd=0.5, policy=FailurePolicy.SKIP)
    assert feeder.run(stills) == 3
    assert session.pts == [0.0, 0.5, 1.0]
    assert feeder.skipped == ["bad"]


def test_progress_reports_every_still_in_order():
    reports = []
    make_feeder(RecordingSession(), progress=lambda d, t: reports.append((d, t))).run(make_stills(4))
    assert reports == [(1, 4), (2, 4), (3, 4), (4, 4)]


def test_broken_progress_callback_is_ignored():
    def progress(done, total):
        raise RuntimeError("ui went away")

    session = RecordingSession()
    make_feeder(session, progress=progress).run(make_stills(3))
    assert len(session.pts) == 3


def test_writer_failure_stops_feeding():
    session = RecordingSession(fail_after=2)
    permit = InFlightPermit(1)
    feeder = make_feeder(session, permit=permit)
    with pytest.raises(EncodeFailed):
        feeder.run(make_stills(5))
    assert len(session.pts) == 2
    assert permit.available == 1


def test_real_compositor_fills_group(recording_session):
    canvas = CanvasSpec(16, 8)
    recording_session.start(None, canvas, 1.0)
    feeder = PacedFrameFeeder(recording_session, FrameBufferPool(canvas), canvas, 1.0)
    group = make_group(3, size=(8, 8))
    feeder.run(group.sorted_images())
    assert recording_session.shapes == [canvas.shape] * 3


def test_unstarted_session_rejects_first_frame():
    session = RecordingSession()
    permit = InFlightPermit(1)
    feeder = PacedFrameFeeder(session, FrameBufferPool(TINY), TINY, 0.2, permit=permit,
                              compositor=fill_compositor, ready_poll_interval=0.01)
    with pytest.raises(InvalidAppendOrder):
        feeder.run(make_stills(2))
    assert permit.available == 1
    assert feeder.pool.outstanding == 0
