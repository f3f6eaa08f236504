"""
Chunker Module

Copies every row of an origin table into a destination table while the
origin keeps taking production writes. Rows are copied in primary-key order,
one INSERT LOW_PRIORITY IGNORE ... SELECT per chunk, each committed on its
own. Chunk size adapts to observed throughput, the loop slows down when
replicas lag, transient lock failures are retried, and unexpected warnings
abort the copy.

Rows inserted above the initial maximum key while the copy runs are left to
the change-capture triggers installed by the caller. Nothing is persisted
between runs: a failed copy is restarted from scratch, which is safe because
the inserts skip rows that already exist.
"""

from typing import Any, Dict, List, Optional
import logging
import os
import time

from mysql_lhm.exceptions import NoProgressError
from mysql_lhm.pacer import AdaptivePacer
from mysql_lhm.replica_lag import ReplicaLagMonitor, discover_replicas
from mysql_lhm.retry_policy import RetryPolicy
from mysql_lhm.sql_helper import SqlHelper
from mysql_lhm.table_metadata import Intersection, Table, load_table
from mysql_lhm.throttle import LagThrottle
from mysql_lhm.warning_classifier import WarningClassifier

logger = logging.getLogger(__name__)

DEFAULT_STRIDE = 2000
DEFAULT_STRIDE_MAX = 20000
DEFAULT_TARGET_QUERY_SECONDS = 0.75

PROGRESS_LOG_INTERVAL = 10  # seconds


def _get_default_options() -> Dict[str, Any]:
    """
    Chunker defaults, overridable through the environment.

    Returns:
        Dict with stride, stride_max and target_query_seconds
    """
    return {
        'stride': int(os.environ.get('LHM_STRIDE', DEFAULT_STRIDE)),
        'stride_max': int(os.environ.get('LHM_STRIDE_MAX', DEFAULT_STRIDE_MAX)),
        'target_query_seconds': float(
            os.environ.get('LHM_TARGET_QUERY_SECONDS', DEFAULT_TARGET_QUERY_SECONDS)
        ),
    }


def resolve_options(options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Merge explicit options over the defaults and validate them.

    Raises:
        ValueError: If stride, stride_max or target_query_seconds is invalid
    """
    resolved = _get_default_options()
    resolved.update({key: value for key, value in (options or {}).items() if value is not None})

    if not resolved['target_query_seconds']:
        resolved['target_query_seconds'] = DEFAULT_TARGET_QUERY_SECONDS

    resolved['stride'] = int(resolved['stride'])
    resolved['stride_max'] = int(resolved['stride_max'])
    resolved['target_query_seconds'] = float(resolved['target_query_seconds'])

    if resolved['stride'] <= 0:
        raise ValueError(f"stride must be positive (got {resolved['stride']})")
    if resolved['stride_max'] < resolved['stride']:
        raise ValueError(
            f"stride_max ({resolved['stride_max']}) must not be below stride ({resolved['stride']})"
        )
    if resolved['target_query_seconds'] <= 0:
        raise ValueError(
            f"target_query_seconds must be positive (got {resolved['target_query_seconds']})"
        )

    return resolved


class Chunker:
    """
    Copy an origin table into a destination table in adaptive chunks.

    The cursor (current position and stride) belongs to a single run and is
    never shared; concurrent copies into the same destination are not
    coordinated.
    """

    def __init__(
        self,
        adapter,
        origin: Table,
        destination: Table,
        sql_helper: Optional[SqlHelper] = None,
        options: Optional[Dict[str, Any]] = None,
        replicas: Optional[List[Any]] = None,
        renames: Optional[Dict[str, str]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        warning_classifier: Optional[WarningClassifier] = None,
    ):
        """
        Initialize the chunker and read the copy bounds.

        Args:
            adapter: Primary database adapter (execute, fetch_row, fetch_all)
            origin: Table copied from
            destination: Table copied into
            sql_helper: Identifier quoting and column rendering
            options: stride, stride_max, target_query_seconds
            replicas: Replica adapters; discovered from the adapter options when None
            renames: Origin -> destination column renames
            retry_policy: Policy wrapping each chunk statement
            warning_classifier: Classifier applied to each chunk's warnings
        """
        self.adapter = adapter
        self.origin = origin
        self.destination = destination
        self.sql_helper = sql_helper or SqlHelper()
        self.options = resolve_options(options)
        self.retry_policy = retry_policy or RetryPolicy()
        self.warning_classifier = warning_classifier or WarningClassifier()

        self.primary_key = self.sql_helper.quote_identifier(
            self.sql_helper.extract_primary_key(self.origin)
        )
        self._origin_name = self.sql_helper.quote_identifier(self.origin.name)
        self._destination_name = self.sql_helper.quote_identifier(self.destination.name)

        self.replicas = discover_replicas(adapter) if replicas is None else list(replicas)
        self.throttle = LagThrottle(ReplicaLagMonitor(self.replicas)) if self.replicas else None

        self.bounds = self._get_bounds()
        self.current_position = self.bounds['low_primary_key']

        self.intersection = Intersection(self.origin, self.destination, renames)

    def _get_bounds(self) -> Dict[str, int]:
        """
        MIN/MAX of the primary key at start time.

        Rows added above the maximum during the copy are not copied here.
        An empty table gives (0, 0).
        """
        sql = f"SELECT MIN({self.primary_key}), MAX({self.primary_key}) FROM {self._origin_name}"
        row = self.adapter.fetch_row(sql) or (None, None)
        low, high = row[0], row[1]
        return {
            'low_primary_key': int(low) if low is not None else 0,
            'high_primary_key': int(high) if high is not None else 0,
        }

    def get_estimated_rows(self) -> int:
        """Row count estimate from the query planner (EXPLAIN), not an exact count."""
        rows = self.adapter.fetch_all(f"EXPLAIN SELECT * FROM {self._origin_name} WHERE 1")
        if not rows:
            return 0
        return int(rows[0].get('rows') or 0)

    def copy(self, current: int, stride: int) -> str:
        """Build the INSERT ... SELECT for the chunk of ``stride`` rows starting at ``current``."""
        destination_columns = ','.join(
            self.sql_helper.quote_columns(self.intersection.destination())
        )
        origin_columns = ','.join(
            self.sql_helper.typed_columns(
                self._origin_name,
                self.sql_helper.quote_columns(self.intersection.origin()),
            )
        )
        return " ".join([
            f"INSERT LOW_PRIORITY IGNORE INTO {self._destination_name} ({destination_columns})",
            f"SELECT {origin_columns} FROM {self._origin_name}",
            f"WHERE {self._origin_name}.{self.primary_key} >= {current}",
            f"ORDER BY {self._origin_name}.{self.primary_key} ASC",
            f"LIMIT {stride}",
        ])

    def get_next_chunk_start(self, old_start: int, old_stride: int) -> Optional[int]:
        """
        Key of the first row after the chunk just copied.

        Found by position (OFFSET) rather than key arithmetic since keys may be
        sparse. None when there is no such row.
        """
        sql = (
            f"SELECT {self.primary_key} FROM {self._origin_name} "
            f"WHERE {self.primary_key} >= {old_start} "
            f"ORDER BY {self.primary_key} ASC "
            f"LIMIT 1 OFFSET {old_stride}"
        )
        row = self.adapter.fetch_row(sql)
        if not row:
            return None
        return int(row[0])

    def get_warnings(self) -> List[Dict[str, Any]]:
        return self.adapter.fetch_all("SHOW WARNINGS")

    def run(self) -> Dict[str, Any]:
        """
        Copy the whole table.

        Returns:
            Copy result dictionary with statistics

        Raises:
            NoProgressError: If the chunk boundary stops advancing
            UnexpectedWarningError: If a chunk produces a non-ignorable warning
            pymysql.err.MySQLError: Non-retryable failure or retry budget exhausted
        """
        logger.info(f"Copying data from {self._origin_name} into {self._destination_name}")

        stride = self.options['stride']
        target_query_seconds = self.options['target_query_seconds']
        high = self.bounds['high_primary_key']

        # Fewer rows than one stride: copy it all in one pass
        estimated_rows = self.get_estimated_rows()
        if estimated_rows < stride:
            stride = max(high, stride)
            logger.info(
                f"Estimated {estimated_rows} rows is below the stride, copying in a single chunk"
            )

        pacer = AdaptivePacer(stride, self.options['stride_max'], target_query_seconds)

        initial_start = time.time()
        last_update = 0.0
        total_rows = 0
        chunks_processed = 0
        first_pass = True

        while self.current_position <= high or first_pass:
            first_pass = False

            if self.throttle is not None:
                self.throttle.wait()

            query = self.copy(self.current_position, stride)
            logger.debug(query)

            start_time = time.time()
            result = self.retry_policy.call(lambda: self.adapter.execute(query))
            row_count = result['rows_affected']
            warnings = self.get_warnings()
            end_time = time.time()
            timing = end_time - start_time

            total_rows += row_count
            chunks_processed += 1

            if end_time - last_update > PROGRESS_LOG_INTERVAL:
                logger.info(f"Copied {total_rows:,} of an estimated {estimated_rows:,} rows")
                logger.info(
                    f"There is a stride of {stride} and a goal of {target_query_seconds} sec/query"
                )
                last_update = end_time

            self.warning_classifier.check(warnings)

            if not warnings and row_count == 0:
                break

            new_position = self.get_next_chunk_start(self.current_position, stride)
            if new_position is None:
                break
            if new_position <= self.current_position:
                logger.error(
                    f"Offset {new_position} invalid: {self.current_position} offset / {stride} stride"
                )
                raise NoProgressError(self.current_position, new_position, stride)
            self.current_position = new_position

            stride = pacer.record(row_count, timing)

        total_time = time.time() - initial_start
        logger.info(f"Copied {total_rows:,} rows in {total_time:.2f} seconds")

        return {
            'origin_table': self.origin.name,
            'destination_table': self.destination.name,
            'rows_copied': total_rows,
            'chunks_processed': chunks_processed,
            'estimated_rows': estimated_rows,
            'final_stride': stride,
            'elapsed_time_seconds': total_time,
        }


def copy_table(
    mysql_conn_id: str,
    origin_table: str,
    destination_table: str,
    options: Optional[Dict[str, Any]] = None,
    renames: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    Convenience function to copy one table over an Airflow connection.

    Args:
        mysql_conn_id: Airflow connection ID of the primary
        origin_table: Table copied from
        destination_table: Table copied into (must already exist)
        options: stride, stride_max, target_query_seconds
        renames: Origin -> destination column renames

    Returns:
        Copy result dictionary
    """
    from mysql_lhm.mysql_helper import MySqlConnectionHelper

    adapter = MySqlConnectionHelper(mysql_conn_id=mysql_conn_id)
    chunker = None
    try:
        origin = load_table(adapter, origin_table)
        destination = load_table(adapter, destination_table)
        chunker = Chunker(adapter, origin, destination, options=options, renames=renames)
        return chunker.run()
    finally:
        if chunker is not None:
            for replica in chunker.replicas:
                replica.disconnect()
        adapter.disconnect()
