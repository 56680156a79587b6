import threading

from pv_whisper.visualization import VisualizationTracker


def make_tracker():
    calls = []
    tracker = VisualizationTracker(lambda *args: calls.append(args))
    return tracker, calls


def test_first_mark_triggers_visualization():
    tracker, calls = make_tracker()

    assert tracker.mark_shown("alice", 20, 0x81ECEC) is True
    assert calls == [("alice", 20, 0x81ECEC)]
    assert "alice" in tracker


def test_second_mark_is_suppressed():
    tracker, calls = make_tracker()
    tracker.mark_shown("alice", 20, 0x81ECEC)

    assert tracker.mark_shown("alice", 20, 0x81ECEC) is False
    assert len(calls) == 1


def test_invalidate_allows_showing_again():
    tracker, calls = make_tracker()
    tracker.mark_shown("alice", 20, 0x81ECEC)

    tracker.invalidate("alice")

    assert tracker.mark_shown("alice", 30, 0x81ECEC) is True
    assert calls[-1] == ("alice", 30, 0x81ECEC)


def test_invalidate_unknown_listener_is_noop():
    tracker, calls = make_tracker()
    tracker.invalidate("nobody")
    assert len(tracker) == 0


def test_listeners_are_tracked_independently():
    tracker, calls = make_tracker()
    tracker.mark_shown("alice", 20, 1)
    tracker.invalidate("bob")

    assert tracker.mark_shown("bob", 20, 1) is True
    assert "alice" in tracker


def test_concurrent_marks_show_once():
    tracker, calls = make_tracker()
    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(tracker.mark_shown("alice", 20, 1))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert len(calls) == 1
