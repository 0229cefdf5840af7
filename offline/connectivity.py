"""Connectivity monitor driving background reconciliation.

Connectivity signals, timer ticks and queued writes are posted as discrete
events onto one ``asyncio.Queue`` and consumed by a single task. Because that
task awaits each reconciliation run before reading the next event, at most one
run is active at a time. Triggers that arrive during a run are drained
afterwards and coalesced into at most one follow-up run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Union

from offline.reconciler import Reconciler, ReconcileReport
from offline.submission_queue import SubmissionQueue

LOGGER = logging.getLogger("studysync.connectivity")


class ConnectivityState(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass(frozen=True)
class ConnectivityChanged:
    online: bool


@dataclass(frozen=True)
class TimerTick:
    pass


@dataclass(frozen=True)
class WriteRequested:
    pass


@dataclass(frozen=True)
class _Stop:
    pass


Event = Union[ConnectivityChanged, TimerTick, WriteRequested, _Stop]


@dataclass(frozen=True)
class ConnectivityStatus:
    """What observers are told after a transition or a sync run."""

    state: ConnectivityState
    pending: int
    last_report: Optional[ReconcileReport] = None

    @property
    def online(self) -> bool:
        return self.state is ConnectivityState.ONLINE


Observer = Callable[[ConnectivityStatus], None]
Probe = Callable[[], bool]


class ConnectivityMonitor:
    """Track online/offline state and trigger the reconciler.

    ``probe`` reports platform connectivity; it is consulted once on start
    (unless ``initially_online`` is given) and before every periodic tick.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        queue: SubmissionQueue,
        *,
        interval: float = 30.0,
        probe: Optional[Probe] = None,
        initially_online: Optional[bool] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._reconciler = reconciler
        self._queue = queue
        self.interval = interval
        self._probe = probe
        self._initially_online = initially_online
        self.state = ConnectivityState.OFFLINE
        self.runs = 0
        self.last_report: Optional[ReconcileReport] = None
        self._observers: List[Observer] = []
        self._events: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._consumer: Optional[asyncio.Task] = None
        self._ticker: Optional[asyncio.Task] = None

    @property
    def online(self) -> bool:
        return self.state is ConnectivityState.ONLINE

    def add_observer(self, observer: Observer) -> None:
        self._observers.append(observer)

    def _publish(self) -> None:
        status = ConnectivityStatus(self.state, self._queue.pending_count(), self.last_report)
        for observer in list(self._observers):
            try:
                observer(status)
            except Exception:  # observers must not break the event loop
                LOGGER.exception("Connectivity observer %r failed", observer)

    # ---------- lifecycle ----------
    async def start(self) -> None:
        if self._consumer is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._events = asyncio.Queue()
        online = self._initially_online
        if online is None:
            online = await self._run_probe()
        self.state = ConnectivityState.ONLINE if online else ConnectivityState.OFFLINE
        LOGGER.info("Connectivity monitor started (%s, %s pending)", self.state.value, self._queue.pending_count())
        self._consumer = asyncio.create_task(self._consume(), name="studysync-sync")
        self._ticker = asyncio.create_task(self._tick(), name="studysync-tick")
        if self.online and self._queue.pending_count():
            self.post(WriteRequested())

    async def stop(self) -> None:
        if self._consumer is None:
            return
        if self._ticker is not None:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
        self.post(_Stop())
        await self._consumer
        self._consumer = None
        self._ticker = None
        self._events = None
        self._loop = None

    # ---------- event intake ----------
    def post(self, event: Event) -> None:
        """Queue ``event``. Safe to call from any thread once started."""
        if self._events is None or self._loop is None:
            raise RuntimeError("connectivity monitor is not running")
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._events.put_nowait(event)
        else:
            self._loop.call_soon_threadsafe(self._events.put_nowait, event)

    def set_online(self, online: bool) -> None:
        self.post(ConnectivityChanged(online))

    @property
    def running(self) -> bool:
        return self._events is not None and self._loop is not None and not self._loop.is_closed()

    def notify_write(self) -> None:
        """Ask for a sync run after a queued write. Ignored while the monitor is not running."""
        if self.running:
            self.post(WriteRequested())

    # ---------- consumer ----------
    def _apply(self, event: Event) -> bool:
        """Update state for ``event``; return whether it asks for a sync run."""
        if isinstance(event, ConnectivityChanged):
            new_state = ConnectivityState.ONLINE if event.online else ConnectivityState.OFFLINE
            if new_state is self.state:
                return False
            self.state = new_state
            LOGGER.info("App is %s", new_state.value)
            if new_state is ConnectivityState.OFFLINE:
                self._publish()
                return False
            return True
        if isinstance(event, (TimerTick, WriteRequested)):
            return self.online and self._queue.pending_count() > 0
        return False

    def _drain(self) -> tuple[bool, bool]:
        wanted = False
        stopping = False
        while True:
            try:
                event = self._events.get_nowait()
            except asyncio.QueueEmpty:
                return wanted, stopping
            if isinstance(event, _Stop):
                stopping = True
                continue
            wanted = self._apply(event) or wanted

    async def _consume(self) -> None:
        while True:
            event = await self._events.get()
            if isinstance(event, _Stop):
                return
            wanted = self._apply(event)
            stopping = False
            while wanted and not stopping:
                await self._run_reconcile()
                wanted, stopping = self._drain()
            if stopping:
                return

    async def _run_reconcile(self) -> None:
        self.runs += 1
        try:
            report = await asyncio.to_thread(self._reconciler.reconcile)
        except Exception:
            LOGGER.exception("Reconciliation run failed unexpectedly")
            return
        self.last_report = report
        if report.stopped_reason == "unavailable" and self._probe is not None and not await self._run_probe():
            self.state = ConnectivityState.OFFLINE
            LOGGER.info("App is offline")
        self._publish()

    # ---------- timer ----------
    async def _run_probe(self) -> bool:
        if self._probe is None:
            return True
        try:
            return bool(await asyncio.to_thread(self._probe))
        except Exception as exc:
            LOGGER.warning("Connectivity probe failed: %s", exc)
            return False

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self._probe is not None:
                self.post(ConnectivityChanged(await self._run_probe()))
            self.post(TimerTick())
