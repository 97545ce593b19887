import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class DeadlineTimer:
    """Handle for one scheduled deadline. Cancelling it is final."""

    def __init__(self, label: str, delay: float):
        self.label = label
        self.delay = delay
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        if not self._cancelled.is_set():
            self._cancelled.set()
            logger.info(f"[timer-cancel] {self.label}")

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()


class DeadlineScheduler:
    """Run a callback once after a delay on a Socket.IO background task.

    - No-ops (returns an inert timer) when disabled, e.g. in TESTING mode
    - The callback is skipped if the timer was cancelled while sleeping
    - Owners must still re-check their own state when the callback runs;
      cancellation can race with a sleep that has already finished
    """

    def __init__(self, start_task: Callable, sleep: Callable[[float], None] = time.sleep,
                 enabled: bool = True, heartbeat: int = 0):
        self._start_task = start_task
        self._sleep = sleep
        self.enabled = enabled
        self.heartbeat = heartbeat

    def schedule(self, delay: float, callback: Callable[[], None], label: str = '') -> DeadlineTimer:
        timer = DeadlineTimer(label, delay)
        if not self.enabled:
            logger.info(f"[timer-skip] {label} scheduler disabled")
            return timer
        logger.info(f"[timer-set] {label} delay={delay:.2f}s")
        self._start_task(self._worker, timer, callback)
        return timer

    def _worker(self, timer: DeadlineTimer, callback: Callable[[], None]) -> None:
        hb: Optional[int] = self.heartbeat
        if hb and hb > 0:
            slept = 0.0
            while slept < timer.delay and not timer.cancelled:
                step = min(hb, timer.delay - slept)
                self._sleep(step)
                slept += step
                logger.info(f"[timer-heartbeat] {timer.label} remaining={max(0.0, timer.delay - slept):.1f}s")
        else:
            self._sleep(timer.delay)

        if timer.cancelled:
            logger.info(f"[timer-abort] {timer.label} cancelled before firing")
            return
        logger.info(f"[timer-fire] {timer.label}")
        try:
            callback()
        except Exception:
            # Background task: nothing upstream to raise to
            logger.exception(f"[timer-error] {timer.label}")
