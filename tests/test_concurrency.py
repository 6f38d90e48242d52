# tests/test_concurrency.py
# How to run:
#   From repo root: pytest -q
#
# What this covers:
#   - Concurrent enqueue: ids stay unique and gap-free
#   - Concurrent enqueue + activate: no event handed out twice, nothing lost
#   - Partition invariants hold while reporters race the poller
#   - wait_for_pending wakes up on enqueue

import threading
import time
from concurrent.futures import ThreadPoolExecutor

from core.runtime.event_store import EventStore


def test_concurrent_enqueue_assigns_unique_gap_free_ids():
    store = EventStore()
    n_threads, per_thread = 8, 200

    def produce(t):
        for i in range(per_thread):
            store.enqueue(f"{t}-{i}")

    with ThreadPoolExecutor(max_workers=n_threads) as pool:
        list(pool.map(produce, range(n_threads)))

    ids = [ev.aws_request_id for ev in store.list_pending()]
    total = n_threads * per_thread
    assert len(ids) == total
    assert sorted(ids) == [f"{i:012d}" for i in range(1, total + 1)]
    # FIFO: arrival order is id order
    assert ids == sorted(ids)
    store.check_invariants()


def test_concurrent_activation_never_hands_out_an_event_twice():
    store = EventStore()
    n_events, n_pollers = 500, 6
    activated = []
    activated_lock = threading.Lock()
    start = threading.Barrier(n_pollers + 1)
    producing_done = threading.Event()

    def producer():
        start.wait()
        for i in range(n_events):
            store.enqueue(str(i))
        producing_done.set()

    def poller():
        start.wait()
        while True:
            ev = store.activate_next()
            if ev is not None:
                with activated_lock:
                    activated.append(ev.aws_request_id)
                continue
            if producing_done.is_set() and not store.list_pending():
                return

    threads = [threading.Thread(target=poller) for _ in range(n_pollers)]
    threads.append(threading.Thread(target=producer))
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
        assert not t.is_alive()

    assert len(activated) == n_events
    assert len(set(activated)) == n_events
    # one active, everything else displaced into completed
    assert len(store.list_completed()) == n_events - 1
    assert store.active_event() is not None
    assert store.list_pending() == []
    store.check_invariants()


def test_invariants_hold_while_reporters_race_the_poller():
    store = EventStore()
    stop = threading.Event()
    errors = []

    def producer():
        for i in range(300):
            store.enqueue(str(i))
        stop.set()

    def poller():
        while not (stop.is_set() and not store.list_pending()):
            store.activate_next()

    def reporter(success):
        while not stop.is_set() or store.list_pending():
            ev = store.active_event()
            if ev is None:
                continue
            if success:
                store.report_success(ev.aws_request_id, "ok")
            else:
                store.report_error(ev.aws_request_id, "T", "B")

    def checker():
        while not stop.is_set():
            try:
                store.check_invariants()
            except AssertionError as e:
                errors.append(e)
                return

    threads = [
        threading.Thread(target=producer),
        threading.Thread(target=poller),
        threading.Thread(target=reporter, args=(True,)),
        threading.Thread(target=reporter, args=(False,)),
        threading.Thread(target=checker),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
        assert not t.is_alive()

    assert errors == []
    store.check_invariants()
    stats = store.stats()
    assert stats["pending"] + stats["active"] + stats["completed"] == 300


def test_wait_for_pending_wakes_on_enqueue():
    store = EventStore()
    assert store.wait_for_pending(timeout=0.01) is False

    def later():
        time.sleep(0.05)
        store.enqueue("wake")

    t = threading.Thread(target=later)
    t.start()
    started = time.monotonic()
    assert store.wait_for_pending(timeout=5.0) is True
    assert time.monotonic() - started < 5.0
    t.join()
