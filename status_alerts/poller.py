# PollLoop: fetch → diff → notify → persist, once per tick, forever.

# responsibilities:
#   - fire a tick every poll_interval seconds and start a cycle if idle
#   - drop (never queue) ticks that arrive while a cycle is still running
#   - own the ObservedState: load it once, thread it through each cycle,
#     and replace it only after the cycle has saved the new snapshot
#   - isolate failures per cycle so nothing short of cancellation stops the loop
#   - on stop(), give an in-flight cycle shutdown_grace seconds, then cancel it

import asyncio
import logging

from status_alerts.config import (
    NOTIFY_TIMEOUT_SECONDS,
    POLL_INTERVAL_SECONDS,
    SHUTDOWN_GRACE_SECONDS,
)
from status_alerts.differ import compute_alerts
from status_alerts.exceptions import DeliveryError, DiffError, FetchError, StoreError
from status_alerts.fetcher import Fetcher
from status_alerts.models import Alert, ObservedState
from status_alerts.notifiers import Notifier
from status_alerts.store import SnapshotStore

log = logging.getLogger(__name__)


class PollLoop:
    """
    Runs the poll cycle on a fixed timer.

    The loop is either idle or cycling. A cycle runs as its own task so the
    ticker keeps time independently of how long fetching or notifying takes.
    The save is synchronous and is the last step of a cycle, so cancelling
    a cycle can never leave the in-memory state and the store disagreeing
    about a half-applied update.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        notifier: Notifier,
        store: SnapshotStore,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        notify_timeout: float = NOTIFY_TIMEOUT_SECONDS,
        shutdown_grace: float = SHUTDOWN_GRACE_SECONDS,
    ) -> None:
        self._fetcher = fetcher
        self._notifier = notifier
        self._store = store
        self.poll_interval = poll_interval
        self.notify_timeout = notify_timeout
        self.shutdown_grace = shutdown_grace

        self._state: ObservedState | None = None
        self._cycling = False
        self._cycle_task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

        self.cycles_completed = 0
        self.ticks_dropped = 0

    @property
    def state(self) -> ObservedState:
        if self._state is None:
            self._state = self._load_initial_state()
        return self._state

    @property
    def is_cycling(self) -> bool:
        return self._cycling

    def _load_initial_state(self) -> ObservedState:
        try:
            state = self._store.load()
        except StoreError as exc:
            log.error("Could not load saved state (%s); starting from an empty snapshot", exc)
            return ObservedState.empty()
        log.info(
            "Loaded state: %d institution(s), %d timeline entr(ies)",
            len(state.uptime), len(state.timeline),
        )
        return state

    # ─── One cycle ────────────────────────────────────────────────────────────

    async def run_cycle(self) -> ObservedState:
        """Run a single cycle now and return the state the loop holds afterwards."""
        if self._cycling:
            log.debug("Cycle already in progress; not starting another")
            return self.state

        self._cycling = True
        try:
            self._state = await self._cycle(self.state)
            self.cycles_completed += 1
        finally:
            self._cycling = False
        return self._state

    async def _cycle(self, previous: ObservedState) -> ObservedState:
        try:
            uptime = await self._fetcher.fetch_uptime()
            timeline = await self._fetcher.fetch_timeline()
        except FetchError as exc:
            log.warning("Fetch failed, skipping this cycle: %s", exc)
            return previous

        try:
            alerts = compute_alerts(previous, uptime, timeline)
        except DiffError as exc:
            log.error("%s; emitting no alerts this cycle", exc)
            alerts = []

        if alerts:
            log.info("%d new alert(s) detected", len(alerts))
            await self._deliver(alerts)
        else:
            log.debug("No new alerts")

        current = ObservedState(uptime=uptime, timeline=timeline)
        try:
            self._store.save(current)
        except StoreError as exc:
            log.error("Could not save state, keeping the previous snapshot: %s", exc)
            return previous
        return current

    async def _deliver(self, alerts: list[Alert]) -> None:
        try:
            await asyncio.wait_for(self._notifier.notify(alerts), timeout=self.notify_timeout)
        except DeliveryError as exc:
            log.error("Delivery of %d alert(s) failed: %s", len(alerts), exc)
        except asyncio.TimeoutError:
            log.error(
                "Delivery of %d alert(s) timed out after %.1fs",
                len(alerts), self.notify_timeout,
            )
        except Exception as exc:
            # the save after notify must still run; delivery is at most once
            log.exception("Unexpected error delivering %d alert(s): %s", len(alerts), exc)

    # ─── Timer ────────────────────────────────────────────────────────────────

    async def _guarded_cycle(self) -> None:
        try:
            await self.run_cycle()
        except asyncio.CancelledError:
            log.warning("Poll cycle cancelled before it completed")
            raise
        except Exception as exc:
            log.exception("Unexpected error in poll cycle: %s", exc)

    def _tick(self) -> None:
        if self._cycle_task is not None and not self._cycle_task.done():
            self.ticks_dropped += 1
            log.debug("Previous cycle still running; dropping tick (%d dropped)", self.ticks_dropped)
            return
        self._cycle_task = asyncio.create_task(self._guarded_cycle(), name="poll-cycle")

    async def run(self) -> None:
        """Tick until stop() is called, then drain the in-flight cycle."""
        self._stopping.clear()
        state = self.state
        log.info(
            "Polling every %ss (baseline: %d institution(s))",
            self.poll_interval, len(state.uptime),
        )

        try:
            while not self._stopping.is_set():
                self._tick()
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self._drain()

        log.info(
            "Poll loop stopped after %d cycle(s), %d dropped tick(s)",
            self.cycles_completed, self.ticks_dropped,
        )

    async def _drain(self) -> None:
        task = self._cycle_task
        if task is None or task.done():
            return

        log.info("Waiting up to %ss for the in-flight cycle to finish", self.shutdown_grace)
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self.shutdown_grace)
        except asyncio.TimeoutError:
            log.warning("In-flight cycle exceeded the shutdown grace period; cancelling it")
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        except asyncio.CancelledError:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise

    def stop(self) -> None:
        """Ask the loop to stop after the current cycle (or the grace period)."""
        self._stopping.set()
