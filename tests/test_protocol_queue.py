import pytest

from kiosk_stack.l2_ingest.protocol_queue import EventQueue


def test_event_queue_timed_put_get():
    q = EventQueue(maxsize=2, name="tq")

    # Fill within capacity
    assert q.put(1, timeout=0.01) is True
    assert q.put(2, timeout=0.01) is True

    # Exceed capacity → dropped by policy (False)
    assert q.put(3, timeout=0.01) is False

    # Drain two items in FIFO order
    ok, val = q.get(timeout=0.01)
    assert ok is True and val == 1

    ok, val = q.get(timeout=0.01)
    assert ok is True and val == 2

    # Third get times out → (False, None)
    ok, val = q.get(timeout=0.01)
    assert ok is False and val is None


def test_event_queue_drain_keeps_arrival_order():
    q = EventQueue(maxsize=16, name="tq")
    for code in (7, 9, 15, 0):
        assert q.put(code, timeout=0.0)

    assert q.qsize() == 4
    assert q.drain() == [7, 9, 15, 0]
    assert q.qsize() == 0
    assert q.drain() == []


def test_event_queue_nonblocking_put_on_full_queue():
    q = EventQueue(maxsize=1, name="tq")
    assert q.put(1, timeout=0.0) is True
    assert q.put(2, timeout=0.0) is False
    assert q.drain() == [1]


def test_event_queue_rejects_bad_arguments():
    with pytest.raises(ValueError):
        EventQueue(maxsize=0, name="tq")
    with pytest.raises(ValueError):
        EventQueue(maxsize=4, name=" ")
    q = EventQueue(maxsize=4, name="EventQueue")
    assert q.maxsize() == 4
    assert q.name() == "EventQueue"


def test_event_queue_counts_dropped_items():
    q = EventQueue(maxsize=2, name="tq")
    for code in range(5):
        q.put(code, timeout=0.0)
    assert q.dropped() == 3
    assert q.drain(max_items=1) == [0]
    assert q.drain() == [1]
    ok, val = q.get(timeout=0.0)
    assert ok is False and val is None
