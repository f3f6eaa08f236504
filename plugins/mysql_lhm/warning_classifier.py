"""
Warning Classifier Module

Statements that succeed can still leave warnings behind (``SHOW WARNINGS``).
Some are the expected cost of INSERT IGNORE and type coercion; anything else
may hide data loss that INSERT IGNORE would otherwise swallow.
"""

from typing import Any, Dict, FrozenSet, Iterable, List
from mysql_lhm.exceptions import UnexpectedWarningError
import logging

logger = logging.getLogger(__name__)


IGNORABLE_WARNING_CODES: FrozenSet[int] = frozenset({
    # Error: 1062 (ER_DUP_ENTRY)
    # Message: Duplicate entry '%ld' for key '%s'
    1062,
    # Error: 1265 (WARN_DATA_TRUNCATED)
    # Message: Data truncated for column '%s' at row %ld
    1265,
    # Error: 1592 (ER_BINLOG_UNSAFE_STATEMENT)
    # Message: Statement may not be safe to log in statement format.
    1592,
})


def warning_record(row: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize a SHOW WARNINGS row to {'level', 'code', 'message'}."""
    return {
        'level': row.get('Level', row.get('level')),
        'code': int(row.get('Code', row.get('code'))),
        'message': row.get('Message', row.get('message', '')),
    }


class WarningClassifier:
    """Decide which statement warnings are tolerable."""

    def __init__(self, ignorable_codes: Iterable[int] = IGNORABLE_WARNING_CODES):
        self.ignorable_codes = frozenset(int(code) for code in ignorable_codes)

    def is_ignorable(self, warning: Dict[str, Any]) -> bool:
        return warning_record(warning)['code'] in self.ignorable_codes

    def check(self, warnings: List[Dict[str, Any]]) -> None:
        """
        Raise on the first warning that is not in the allow-list.

        Raises:
            UnexpectedWarningError: For any non-ignorable warning code
        """
        for row in warnings:
            if not self.is_ignorable(row):
                record = warning_record(row)
                logger.error(f"Unexpected warning {record['code']}: {record['message']}")
                raise UnexpectedWarningError(record['code'], record['message'])
