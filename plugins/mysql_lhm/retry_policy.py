"""
Retry Policy Module

Absorbs the transient failures a chunked write against a live table runs
into (lock waits, deadlocks, interrupted statements) and lets everything
else through as fatal.
"""

from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Tuple
import logging
import time
import pymysql

logger = logging.getLogger(__name__)


class TransientFailure(Enum):
    """Categories of SQL failures that are safe to retry."""

    LOCK_WAIT_TIMEOUT = "lock_wait_timeout"
    DEADLOCK = "deadlock"
    QUERY_INTERRUPTED = "query_interrupted"


# category -> (MySQL errno, message signature)
TRANSIENT_SIGNATURES: Mapping[TransientFailure, Tuple[int, str]] = MappingProxyType({
    # ER_LOCK_WAIT_TIMEOUT
    TransientFailure.LOCK_WAIT_TIMEOUT: (1205, 'Lock wait timeout exceeded'),
    # ER_LOCK_DEADLOCK
    TransientFailure.DEADLOCK: (1213, 'Deadlock found'),
    # ER_QUERY_INTERRUPTED
    TransientFailure.QUERY_INTERRUPTED: (1317, 'Query execution was interrupted'),
})

MAX_ATTEMPTS = 11
MIN_DELAY_MICRO_S = 75
MAX_DELAY_MICRO_S = 1000
DELAY_STEP_MICRO_S = 500


def _error_code(error: BaseException) -> Optional[int]:
    """MySQL errno of a pymysql error (first arg), if there is one."""
    args = getattr(error, 'args', ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


def signature_classifier(
    signatures: Mapping[TransientFailure, Tuple[int, str]] = TRANSIENT_SIGNATURES,
) -> Callable[[BaseException], Optional[TransientFailure]]:
    """
    Build the default predicate: match the errno, else the message substring.

    Args:
        signatures: Category -> (errno, message signature) table

    Returns:
        Callable returning the matched category, or None for fatal errors
    """
    signatures = MappingProxyType(dict(signatures))

    def classify(error: BaseException) -> Optional[TransientFailure]:
        code = _error_code(error)
        message = str(error)
        for category, (errno, text) in signatures.items():
            if code == errno:
                return category
        for category, (errno, text) in signatures.items():
            if text in message:
                return category
        return None

    return classify


class RetryPolicy:
    """
    Run a statement, retrying transient database failures with a short backoff.

    Delay before retry ``i`` (0-based) is ``max(min(i * 500, 1000), 75)``
    microseconds. After ``max_attempts`` failed attempts the last error is
    re-raised unchanged.
    """

    def __init__(
        self,
        classify: Optional[Callable[[BaseException], Optional[TransientFailure]]] = None,
        max_attempts: int = MAX_ATTEMPTS,
        retry_on: Tuple[type, ...] = (pymysql.err.MySQLError,),
        sleep: Optional[Callable[[float], Any]] = None,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1 (got {max_attempts})")
        self.classify = classify or signature_classifier()
        self.max_attempts = max_attempts
        self.retry_on = retry_on
        self._sleep = sleep or time.sleep

    @staticmethod
    def delay_micros(retry_index: int) -> int:
        return max(min(retry_index * DELAY_STEP_MICRO_S, MAX_DELAY_MICRO_S), MIN_DELAY_MICRO_S)

    def call(self, fn: Callable[[], Any]) -> Any:
        """
        Call ``fn`` until it succeeds, fails fatally, or the budget runs out.

        Returns:
            Whatever ``fn`` returns
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn()
            except self.retry_on as e:
                category = self.classify(e)
                if category is None:
                    raise
                if attempt >= self.max_attempts:
                    logger.error(
                        f"Giving up after {attempt} attempts ({category.value}): {e}"
                    )
                    raise
                delay = self.delay_micros(attempt - 1)
                logger.warning(
                    f"Transient failure ({category.value}) on attempt {attempt}/{self.max_attempts}, "
                    f"retrying in {delay} microseconds: {e}"
                )
                self._sleep(delay / 1_000_000)
