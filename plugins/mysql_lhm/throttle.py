"""
Replica Lag Throttle

Inter-chunk delay driven by replica lag. The delay doubles while replicas
are too far behind and halves once they recover.
"""

from typing import Any, Callable, Optional
from mysql_lhm.replica_lag import MAX_ALLOWED_REPLICA_LAG, MIN_ALLOWED_REPLICA_LAG
import logging
import time

logger = logging.getLogger(__name__)

LAG_CHECK_FREQUENCY = 30  # seconds
MIN_DELAY_MICRO_S = 1000
MAX_DELAY_MICRO_S = 10 * 1000 * 1000  # 10s


class LagThrottle:
    """Delay state plus the periodic lag check that adjusts it."""

    def __init__(
        self,
        monitor,
        check_frequency: float = LAG_CHECK_FREQUENCY,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Any]] = None,
    ):
        self.monitor = monitor
        self.check_frequency = check_frequency
        self.delay = MIN_DELAY_MICRO_S
        self.last_check = 0.0
        self._clock = clock or time.time
        self._sleep = sleep or time.sleep

    def due(self, now: float) -> bool:
        return self.last_check < now - self.check_frequency

    def adjust(self, lag: float) -> int:
        """
        Apply one lag reading to the delay.

        Returns:
            The new delay in microseconds
        """
        if lag > MAX_ALLOWED_REPLICA_LAG and self.delay < MAX_DELAY_MICRO_S:
            self.delay = min(self.delay * 2, MAX_DELAY_MICRO_S)
            # re-check on the next chunk
            self.last_check = 0.0
            logger.warning(
                f"Replica lag over max allowed, increasing per-chunk delay to {self.delay} microseconds"
            )
        if lag < MIN_ALLOWED_REPLICA_LAG and self.delay > MIN_DELAY_MICRO_S:
            self.delay = max(self.delay // 2, MIN_DELAY_MICRO_S)
            logger.warning(
                f"Replica lag recovering, decreasing per-chunk delay to {self.delay} microseconds"
            )
        return self.delay

    def wait(self, now: Optional[float] = None) -> int:
        """
        Check lag if a check is due, then sleep for the current delay.

        Returns:
            The delay slept, in microseconds
        """
        now = self._clock() if now is None else now
        if self.due(now):
            lag = self.monitor.max_lag()
            self.last_check = now
            self.adjust(lag)

        self._sleep(self.delay / 1_000_000)
        return self.delay
