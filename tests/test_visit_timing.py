import random

from visit_timing import TimingSession


def test_second_start_is_ignored():
    t = TimingSession("A")
    assert t.start(1000) is True
    assert t.start(4000) is False
    assert t.stop(9000) is True
    assert t.accumulated_duration_ms == 8000
    assert t.visit_count == 1


def test_double_stop_is_noop():
    t = TimingSession("A")
    t.start(0)
    t.stop(500)
    assert t.stop(900) is False
    assert t.accumulated_duration_ms == 500
    assert t.last_visited_ms == 500


def test_stop_without_start_is_noop():
    t = TimingSession("A")
    assert t.stop(100) is False
    assert t.accumulated_duration_ms == 0
    assert t.visited is False
    assert t.last_visited_ms is None


def test_first_session_start_is_kept_across_sessions():
    t = TimingSession("A")
    t.start(100)
    t.stop(200)
    t.start(1000)
    t.stop(1500)
    assert t.first_session_start_ms == 100
    assert t.visit_count == 2
    assert t.accumulated_duration_ms == 600
    assert t.last_visited_ms == 1500


def test_effective_duration_includes_live_part():
    t = TimingSession("A")
    t.start(0)
    t.stop(2000)
    t.start(5000)
    view = t.view(6500)
    assert view.is_currently_viewing
    assert view.current_session_start_ms == 5000
    assert view.duration_ms == 2000 + 1500

    t.stop(7000)
    view = t.view(7000)
    assert not view.is_currently_viewing
    assert view.current_session_start_ms is None
    assert view.duration_ms == view.accumulated_duration_ms == 4000
    # no live component after stop
    assert t.view(99999).duration_ms == 4000


def test_stop_before_start_timestamp_adds_nothing():
    t = TimingSession("A")
    t.start(5000)
    t.stop(4000)
    assert t.accumulated_duration_ms == 0
    assert not t.is_currently_viewing


def test_random_interleavings_never_lose_or_negate_time():
    rng = random.Random(7)
    for _ in range(50):
        t = TimingSession("A")
        now = 0
        expected = 0
        started_at = None
        prev_total = 0
        for _ in range(40):
            now += rng.randint(1, 500)
            if rng.random() < 0.5:
                t.start(now)
                if started_at is None:
                    started_at = now
            else:
                t.stop(now)
                if started_at is not None:
                    expected += now - started_at
                    started_at = None
            assert t.accumulated_duration_ms >= prev_total >= 0
            prev_total = t.accumulated_duration_ms
        assert t.accumulated_duration_ms == expected


def test_round_trip_through_dict():
    t = TimingSession("A")
    t.start(100)
    t.stop(1100)
    t.start(2000)
    restored = TimingSession.from_dict("A", t.to_dict())
    assert restored.accumulated_duration_ms == 1000
    assert restored.visit_count == 2
    assert restored.is_currently_viewing
    assert restored.current_session_start_ms == 2000
    assert restored.first_session_start_ms == 100


def test_from_dict_tolerates_garbage():
    t = TimingSession.from_dict("A", {"duration_ms": "abc", "visit_count": -3, "is_currently_viewing": True})
    assert t.accumulated_duration_ms == 0
    assert t.visit_count == 0
    assert not t.is_currently_viewing
    assert TimingSession.from_dict("A", None).visited is False
