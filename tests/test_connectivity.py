import asyncio
import threading

import pytest

from offline.connectivity import ConnectivityMonitor, ConnectivityState
from offline.reconciler import Reconciler, ReconcileReport
from offline.submission_queue import SubmissionQueue


class CountingReconciler:
    """Reconciler stand-in that records runs and can be held mid-run."""

    def __init__(self, hold: bool = False) -> None:
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self.started = threading.Event()
        self.release = threading.Event()
        if not hold:
            self.release.set()
        self._lock = threading.Lock()

    def reconcile(self):
        with self._lock:
            self.calls += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        self.started.set()
        self.release.wait(5)
        with self._lock:
            self.active -= 1
        return ReconcileReport()


async def _wait_until(predicate, timeout=5.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def test_reconnect_triggers_exactly_one_run(local_store, fake_transport):
    queue = SubmissionQueue(local_store)
    queue.enqueue({"wordId": 1, "isCorrect": True})
    queue.enqueue({"wordId": 2, "isCorrect": False})
    monitor = ConnectivityMonitor(Reconciler(queue, fake_transport), queue, interval=3600, initially_online=False)

    async def scenario():
        await monitor.start()
        assert monitor.state is ConnectivityState.OFFLINE
        monitor.set_online(True)
        await _wait_until(lambda: monitor.last_report is not None)
        await monitor.stop()

    asyncio.run(scenario())
    assert monitor.runs == 1
    assert queue.pending_count() == 0
    assert len(fake_transport.posted_payloads()) == 2


def test_reconnect_with_empty_queue_still_runs_once(local_store):
    queue = SubmissionQueue(local_store)
    reconciler = CountingReconciler()
    monitor = ConnectivityMonitor(reconciler, queue, interval=3600, initially_online=False)

    async def scenario():
        await monitor.start()
        monitor.set_online(True)
        monitor.set_online(True)
        await _wait_until(lambda: reconciler.calls == 1)
        await monitor.stop()

    asyncio.run(scenario())
    assert monitor.runs == 1


def test_events_during_run_are_coalesced(local_store):
    queue = SubmissionQueue(local_store)
    queue.enqueue({"wordId": 1, "isCorrect": True})
    reconciler = CountingReconciler(hold=True)
    monitor = ConnectivityMonitor(reconciler, queue, interval=3600, initially_online=True)

    async def scenario():
        await monitor.start()
        await asyncio.to_thread(reconciler.started.wait, 5)
        for online in (False, True, False, True):
            monitor.set_online(online)
        for _ in range(3):
            monitor.notify_write()
        await asyncio.sleep(0.05)
        assert reconciler.calls == 1
        reconciler.release.set()
        await _wait_until(lambda: reconciler.calls == 2)
        await monitor.stop()

    asyncio.run(scenario())
    assert reconciler.calls == 2
    assert reconciler.max_active == 1


def test_going_offline_publishes_pending_count(local_store):
    queue = SubmissionQueue(local_store)
    statuses = []
    monitor = ConnectivityMonitor(CountingReconciler(), queue, interval=3600, initially_online=True)
    monitor.add_observer(statuses.append)

    async def scenario():
        await monitor.start()
        queue.enqueue({"wordId": 1, "isCorrect": True})
        queue.enqueue({"wordId": 1, "isCorrect": True})
        monitor.set_online(False)
        await _wait_until(lambda: statuses)
        await monitor.stop()

    asyncio.run(scenario())
    assert statuses[0].state is ConnectivityState.OFFLINE
    assert statuses[0].pending == 2
    assert monitor.runs == 0


def test_writes_while_offline_do_not_run(local_store):
    queue = SubmissionQueue(local_store)
    reconciler = CountingReconciler()
    monitor = ConnectivityMonitor(reconciler, queue, interval=3600, initially_online=False)

    async def scenario():
        await monitor.start()
        queue.enqueue({"wordId": 1, "isCorrect": True})
        monitor.notify_write()
        await asyncio.sleep(0.05)
        await monitor.stop()

    asyncio.run(scenario())
    assert reconciler.calls == 0


def test_probe_on_tick_detects_reconnect(local_store):
    queue = SubmissionQueue(local_store)
    queue.enqueue({"wordId": 1, "isCorrect": True})
    reconciler = CountingReconciler()
    reachable = {"value": False}
    monitor = ConnectivityMonitor(reconciler, queue, interval=0.02, probe=lambda: reachable["value"])

    async def scenario():
        await monitor.start()
        assert monitor.state is ConnectivityState.OFFLINE
        reachable["value"] = True
        await _wait_until(lambda: reconciler.calls >= 1)
        await monitor.stop()

    asyncio.run(scenario())
    assert monitor.state is ConnectivityState.ONLINE


def test_post_requires_running_monitor(local_store):
    queue = SubmissionQueue(local_store)
    monitor = ConnectivityMonitor(CountingReconciler(), queue)
    with pytest.raises(RuntimeError):
        monitor.set_online(True)
    monitor.notify_write()


def test_interval_must_be_positive(local_store):
    with pytest.raises(ValueError):
        ConnectivityMonitor(CountingReconciler(), SubmissionQueue(local_store), interval=0)
