"""
Live State Reconciler - Polling That Yields to Manual Edits

The active-channel snapshot is refreshed by a background poll of the
core. While an operator drags a fader, that poll would read back a
stale value and overwrite the in-flight local one, so polling is held
by a reference-counted gate for as long as any drag is active.

Classes:
    PollGate: Reference-counted suspend/resume gate
    ActiveChannelSnapshot: channel → value map for one universe
    LiveStateReconciler: Poll loop, gate and fire-and-forget writes

Usage:
    reconciler = LiveStateReconciler(client.fetch_universe, client.set_channels, universe=2)
    reconciler.start()
    reconciler.on_drag_start()
    reconciler.apply_local(5, 200)
    reconciler.on_drag_end()      # poll resumes after the grace delay
"""

from collections.abc import Mapping
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime
from typing import Dict, List, Optional, Callable, Any, Iterator
import logging
import threading

from .types import (
    MAX_DMX_VALUE,
    validate_channel,
    validate_universe,
)

logger = logging.getLogger(__name__)

# Constants
DEFAULT_POLL_INTERVAL_S = 5.0
DEFAULT_RESUME_DELAY_S = 0.3

Scheduler = Callable[[float, Callable[[], None]], Any]


def timer_scheduler(delay_s: float, callback: Callable[[], None]) -> threading.Timer:
    """Run callback once after delay_s on a daemon timer thread."""
    timer = threading.Timer(delay_s, callback)
    timer.daemon = True
    timer.start()
    return timer


class PollGate:
    """
    Reference-counted gate in front of a poll loop.

    acquire() on 0→1 suspends; release() on 1→0 schedules resumption
    after the grace delay. A new acquire during the delay cancels the
    pending resume, so the poll stays suspended throughout.

    Attributes:
        resume_delay_s: Grace delay before resuming
    """

    def __init__(
        self,
        on_suspend: Callable[[], None],
        on_resume: Callable[[], None],
        resume_delay_s: float = DEFAULT_RESUME_DELAY_S,
        scheduler: Optional[Scheduler] = None
    ):
        self._on_suspend = on_suspend
        self._on_resume = on_resume
        self.resume_delay_s = resume_delay_s
        self._schedule = scheduler or timer_scheduler
        self._lock = threading.RLock()
        self._count = 0
        self._suspended = False
        self._generation = 0
        self._pending = None

    @property
    def count(self) -> int:
        return self._count

    @property
    def suspended(self) -> bool:
        """True from the first acquire until the resume actually runs."""
        return self._suspended

    @property
    def generation(self) -> int:
        """Number of times the gate has gone from 0 to 1 holders."""
        return self._generation

    def token(self) -> Optional[int]:
        """Current generation, or None while suspended."""
        with self._lock:
            return None if self._suspended else self._generation

    def run_if_current(self, token: Optional[int], action: Callable[[], bool]) -> bool:
        """
        Run action under the gate lock if no drag has started since token.

        A drag that started and fully ended in between still counts, so
        a result fetched before it can never overwrite its local edits.
        """
        with self._lock:
            if token is None or self._suspended or self._generation != token:
                return False
            return action()

    def acquire(self) -> int:
        with self._lock:
            self._count += 1
            if self._count == 1:
                self._generation += 1
                if self._pending is not None:
                    self._pending.cancel()
                    self._pending = None
                if not self._suspended:
                    self._suspended = True
                    self._on_suspend()
            return self._count

    def release(self) -> int:
        with self._lock:
            if self._count == 0:
                logger.warning("PollGate released more times than acquired")
                return 0
            self._count -= 1
            if self._count == 0:
                self._pending = self._schedule(self.resume_delay_s, self._resume)
            return self._count

    def _resume(self) -> None:
        with self._lock:
            if self._count > 0 or not self._suspended:
                return
            self._pending = None
            self._suspended = False
            self._on_resume()


class ActiveChannelSnapshot(Mapping):
    """
    Current channel values for one universe.

    Written by the poll (whole-snapshot replace) or, while the poll is
    suspended, by local edits. Channels absent from the map read as 0.
    """

    def __init__(self, universe: int, values: Optional[Dict[int, int]] = None):
        self.universe = universe
        self._values: Dict[int, int] = dict(values or {})
        self.updated_at: Optional[datetime] = None

    def __getitem__(self, channel: int) -> int:
        return self._values[channel]

    def __iter__(self) -> Iterator[int]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def replace(self, values: Dict[int, int]) -> None:
        self._values = dict(values)
        self.updated_at = datetime.now()

    def set_local(self, channel: int, value: int) -> None:
        self._values[channel] = value
        self.updated_at = datetime.now()

    def live_channels(self) -> List[int]:
        """Channels with a non-zero value."""
        return sorted(ch for ch, v in self._values.items() if v)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "universe": self.universe,
            "channels": {str(ch): v for ch, v in sorted(self._values.items())},
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class LiveStateReconciler:
    """
    Keeps the active-channel snapshot polled except during manual edits.

    Local writes are fire-and-forget: the value is applied locally, the
    remote write is queued, and a failed write is logged and reported
    through the `write_failed` event. Nothing is rolled back; the next
    successful poll after resumption is the source of truth.

    Attributes:
        universe: Universe being polled
        snapshot: Current ActiveChannelSnapshot
        poll_interval_s: Seconds between polls
        gate: PollGate holding the poll during drags
    """

    def __init__(
        self,
        fetch: Callable[[int], Dict[int, int]],
        commit: Callable[..., Any],
        universe: int = 1,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        resume_delay_s: float = DEFAULT_RESUME_DELAY_S,
        scheduler: Optional[Scheduler] = None,
        executor: Optional[Executor] = None
    ):
        """
        Initialize reconciler.

        Args:
            fetch: universe → {channel: value}, e.g. CoreApiClient.fetch_universe
            commit: (universe, {channel: value}, fade_ms) remote write
            universe: Universe to poll
            poll_interval_s: Poll cadence
            resume_delay_s: Grace delay after the last drag ends
            scheduler: (delay, callback) timer factory, for tests
            executor: Runs remote writes; single worker keeps them ordered
        """
        self.universe = validate_universe(universe)
        self.snapshot = ActiveChannelSnapshot(universe)
        self.poll_interval_s = poll_interval_s
        self._fetch = fetch
        self._commit = commit
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix='fader-commit'
        )
        self.gate = PollGate(
            on_suspend=self._on_suspend,
            on_resume=self._on_resume,
            resume_delay_s=resume_delay_s,
            scheduler=scheduler,
        )
        self._callbacks: Dict[str, List[Callable]] = {}
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ─────────────────────────────────────────────────────────
    # Poll loop
    # ─────────────────────────────────────────────────────────

    @property
    def is_polling(self) -> bool:
        """True when polls are allowed to write the snapshot."""
        return not self.gate.suspended

    def start(self) -> None:
        """Start the background poll thread (first poll runs immediately)."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name=f'dmx-poll-u{self.universe}', daemon=True
        )
        self._thread.start()
        logger.info(f"Polling universe {self.universe} every {self.poll_interval_s}s")

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info(f"Polling universe {self.universe} stopped")

    def shutdown(self) -> None:
        """Stop polling and drain queued writes."""
        self.stop()
        self._executor.shutdown(wait=True)

    def _run(self) -> None:
        self.poll_once()
        while not self._stop_event.wait(self.poll_interval_s):
            self.poll_once()

    def poll_once(self) -> bool:
        """
        Fetch and apply one snapshot.

        Skipped while suspended. A result is discarded if any drag started
        while it was in flight (even one that has already ended), or if
        the universe changed. The check and the replace run under the
        gate lock, so a drag cannot start between them.

        Returns:
            True if the snapshot was replaced
        """
        token = self.gate.token()
        if token is None:
            return False

        universe = self.universe
        try:
            values = self._fetch(universe)
        except Exception as e:
            logger.error(f"Poll of universe {universe} failed: {e}")
            self._emit("poll_failed", {"universe": universe, "error": str(e)})
            return False

        def apply() -> bool:
            if universe != self.universe:
                return False
            self.snapshot.replace(values)
            return True

        if not self.gate.run_if_current(token, apply):
            logger.debug(f"Discarding poll result for universe {universe}")
            return False

        self._emit("snapshot_updated", self.snapshot)
        return True

    def set_universe(self, universe: int) -> None:
        """Switch the polled universe; the snapshot starts empty."""
        self.universe = validate_universe(universe)
        self.snapshot = ActiveChannelSnapshot(universe)

    # ─────────────────────────────────────────────────────────
    # Drags and local edits
    # ─────────────────────────────────────────────────────────

    def on_drag_start(self) -> int:
        return self.gate.acquire()

    def on_drag_end(self) -> int:
        return self.gate.release()

    def apply_local(self, channel: int, value: int, fade_ms: int = 0) -> Future:
        """Apply one channel value locally and queue the remote write."""
        return self.apply_local_many({channel: value}, fade_ms)

    def apply_local_many(self, values: Dict[int, int], fade_ms: int = 0) -> Future:
        """
        Apply several channel values locally and queue one remote write.

        Values are clamped to 0-255. Channels outside 1-512 raise
        AddressValidationError before anything is written.
        """
        universe = self.universe
        clamped = {}
        for channel, value in values.items():
            validate_channel(channel, universe)
            clamped[channel] = max(0, min(MAX_DMX_VALUE, int(value)))

        for channel, value in clamped.items():
            self.snapshot.set_local(channel, value)

        future = self._executor.submit(self._commit, universe, clamped, fade_ms)
        future.add_done_callback(lambda f: self._on_commit_done(f, universe, clamped))
        return future

    def _on_commit_done(self, future: Future, universe: int, values: Dict[int, int]) -> None:
        error = future.exception()
        if error is None:
            return
        logger.error(f"Write of {len(values)} channel(s) to universe {universe} failed: {error}")
        self._emit("write_failed", {
            "universe": universe,
            "channels": values,
            "error": str(error),
        })

    def _on_suspend(self) -> None:
        logger.debug(f"Poll of universe {self.universe} suspended")
        self._emit("poll_suspended", self.universe)

    def _on_resume(self) -> None:
        logger.debug(f"Poll of universe {self.universe} resumed")
        self._emit("poll_resumed", self.universe)

    # ─────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        """
        Register event callback.

        Events:
            - snapshot_updated: Poll replaced the snapshot
            - poll_failed: Fetch raised
            - poll_suspended: First drag started
            - poll_resumed: Grace delay after last drag elapsed
            - write_failed: Remote write of a local edit failed
        """
        if event not in self._callbacks:
            self._callbacks[event] = []
        self._callbacks[event].append(callback)

    def off(self, event: str, callback: Callable[..., Any]) -> None:
        if event in self._callbacks:
            self._callbacks[event] = [
                cb for cb in self._callbacks[event] if cb != callback
            ]

    def _emit(self, event: str, data: Any) -> None:
        for callback in self._callbacks.get(event, []):
            try:
                callback(data)
            except Exception as e:
                logger.error(f"Error in {event} callback: {e}")
