import enum
import logging
import threading
import time


logger = logging.getLogger(__name__)


class SchedulerState(enum.Enum):
    IDLE = "idle"
    FETCHING_INITIAL = "fetching-initial"
    SCHEDULED = "scheduled"
    FINISHED = "finished"
    STOPPED = "stopped"


class RefreshScheduler:
    """Background thread refreshing a registry.

    ``start`` returns at once; the initial refresh runs on the thread.
    With an interval, refreshes then start every ``interval`` seconds,
    counted from the start of the initial one, each bounded by the same
    interval. All refreshes run on this one thread, so they never
    overlap; a slot that passes during an overrunning refresh is skipped.
    """

    def __init__(self, registry, interval=None):
        if interval is not None and interval <= 0:
            raise ValueError(f"Refresh interval must be positive, got {interval}")
        self.registry = registry
        self.interval = interval
        self.state = SchedulerState.IDLE
        self._stop_event = threading.Event()
        self._initial_done = threading.Event()
        self._thread = None
        self._lock = threading.Lock()

    def start(self):
        with self._lock:
            if self._thread is not None:
                raise RuntimeError("Scheduler already started")
            self.state = SchedulerState.FETCHING_INITIAL
            t = threading.Thread(target=self._run, name="bucket-refresh", daemon=True)
            self._thread = t
        t.start()

    def _run(self):
        started = time.monotonic()
        self._refresh()
        if not self._stop_event.is_set():
            if self.interval is None:
                self.state = SchedulerState.FINISHED
            else:
                self.state = SchedulerState.SCHEDULED
        self._initial_done.set()
        if self.interval is None:
            return

        next_run = started + self.interval
        while not self._stop_event.wait(max(0, next_run - time.monotonic())):
            self._refresh()
            next_run += self.interval
            now = time.monotonic()
            if next_run < now:
                # Drop the slots that passed while the refresh overran.
                next_run += ((now - next_run) // self.interval) * self.interval
        self.state = SchedulerState.STOPPED

    def _refresh(self):
        try:
            self.registry.refresh(timeout=self.interval)
        except Exception:
            logger.exception("Error during bucket refresh")

    def wait_for_initial(self, timeout=None):
        """Block until the initial refresh is done. Returns False on timeout."""
        return self._initial_done.wait(timeout)

    def stop(self, timeout=10):
        """Stop refreshing and wait for a running refresh to finish.

        Returns False when the refresh is still running after ``timeout``.
        The state then turns STOPPED once the thread ends.
        """
        self._stop_event.set()
        with self._lock:
            t = self._thread
        if t is not None:
            t.join(timeout=timeout)
            if t.is_alive():
                logger.warning("Refresh still running %ss after stop", timeout)
                return False
        self.state = SchedulerState.STOPPED
        return True
