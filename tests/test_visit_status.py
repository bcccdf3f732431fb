from visit_status import VisitStatusStore


def test_unknown_link_reads_as_unvisited():
    store = VisitStatusStore()
    snap = store.snapshot("nope", 5000)
    assert snap.visited is False
    assert snap.duration_ms == 0
    assert store.link_ids() == []


def test_reopening_accumulates_into_one_record():
    store = VisitStatusStore()
    store.record_visit_start("A", 0)
    store.record_visit_end("A", 4000)
    store.record_visit_start("A", 10_000)
    store.record_visit_end("A", 13_000)

    snap = store.snapshot("A", 20_000)
    assert snap.duration_ms == 7000
    assert snap.visit_count == 2
    assert snap.first_session_start_ms == 0
    assert snap.last_visited_ms == 13_000


def test_live_duration_grows_while_viewing():
    store = VisitStatusStore()
    store.record_visit_start("A", 1000)
    assert store.any_viewing()
    assert store.snapshot("A", 3000).duration_ms == 2000
    assert store.snapshot("A", 8000).duration_ms == 7000


def test_teardown_stops_running_sessions():
    store = VisitStatusStore()
    store.record_visit_start("A", 0)
    store.record_visit_start("B", 500)
    store.record_visit_end("B", 1500)

    assert store.teardown(2000) == ["A"]
    assert not store.any_viewing()
    assert store.snapshot("A", 9999).duration_ms == 2000
    assert store.teardown(3000) == []


def test_restore_closes_mid_view_record_at_save_time():
    store = VisitStatusStore()
    store.record_visit_start("A", 0)
    store.record_visit_end("A", 1000)
    store.record_visit_start("A", 5000)
    saved = store.to_dict()

    restored = VisitStatusStore()
    restored.restore(saved, saved_at_ms=8000)
    snap = restored.snapshot("A", 100_000)
    assert not snap.is_currently_viewing
    assert snap.duration_ms == 1000 + 3000
    assert snap.visit_count == 2


def test_restore_without_save_time_drops_open_session():
    restored = VisitStatusStore()
    restored.restore({"A": {"visited": True, "duration_ms": 1500, "visit_count": 1,
                            "is_currently_viewing": True, "current_session_start_ms": 400}})
    snap = restored.snapshot("A", 100_000)
    assert snap.duration_ms == 1500
    assert not snap.is_currently_viewing


def test_restore_ignores_non_dict():
    store = VisitStatusStore()
    store.record_visit_start("A", 0)
    store.restore("garbage")
    assert store.link_ids() == []
