"""
Replica Lag Module

Discovers the replicas of the primary and measures how far behind they are.
An unreachable or unreadable replica counts as lagging past the throttle's
high-water mark, so the copy slows down instead of failing.
"""

from typing import Any, Dict, List, Optional
from concurrent.futures import ThreadPoolExecutor
import logging
import pymysql

logger = logging.getLogger(__name__)

# Seconds; a replica over this is too far behind
MAX_ALLOWED_REPLICA_LAG = 10
# Seconds; a replica under this has recovered
MIN_ALLOWED_REPLICA_LAG = 5
# Lag assumed for a replica that cannot be read
UNREACHABLE_REPLICA_LAG = MAX_ALLOWED_REPLICA_LAG + 1

REPLICA_STATUS_QUERY = "SHOW SLAVE STATUS"
LAG_COLUMNS = ("Seconds_Behind_Master", "Seconds_Behind_Source")

REPLICATION_CLIENTS_QUERY = (
    "SELECT HOST FROM INFORMATION_SCHEMA.PROCESSLIST "
    "WHERE COMMAND IN ('Binlog Dump', 'Binlog Dump GTID')"
)


def discover_replicas(adapter) -> List[Any]:
    """
    Build one adapter per replica of the primary.

    Driven by the adapter options:
    - ``auto_detect_replicas``: inspect the replication clients connected to
      the primary (``Binlog Dump`` threads in the processlist)
    - ``replica_dbs``: explicit replica descriptors; missing values are taken
      from the primary's connection

    Args:
        adapter: Primary adapter (options, fetch_all, replica())

    Returns:
        List of replica adapters (empty when no replicas are configured)
    """
    options = adapter.options or {}
    replicas = []

    if options.get('auto_detect_replicas'):
        logger.info("Attempting to auto-detect replica database connections")
        for row in adapter.fetch_all(REPLICATION_CLIENTS_QUERY):
            # PROCESSLIST.HOST is host:client_port; the client port is not the
            # replica's listening port, so only the host is taken
            host = str(row['HOST']).rsplit(':', 1)[0]
            replica = adapter.replica({'host': host})
            replicas.append(replica)
            logger.info(f"Registered replica adapter for {replica.describe()}")

    for overrides in options.get('replica_dbs') or []:
        replica = adapter.replica(overrides)
        replicas.append(replica)
        logger.info(f"Registered replica adapter for {replica.describe()}")

    return replicas


def _parse_lag(rows: List[Dict[str, Any]]) -> Optional[int]:
    """Worst Seconds_Behind_* value across status rows, None if absent or NULL."""
    lags = []
    for row in rows:
        value = None
        for column in LAG_COLUMNS:
            if row.get(column) is not None:
                value = row[column]
                break
        if value is None:
            return None
        lags.append(int(value))
    return max(lags) if lags else None


class ReplicaLagMonitor:
    """Poll every registered replica and report the worst lag."""

    def __init__(
        self,
        replicas: List[Any],
        status_query: str = REPLICA_STATUS_QUERY,
        unreachable_lag: int = UNREACHABLE_REPLICA_LAG,
    ):
        self.replicas = list(replicas)
        self.status_query = status_query
        self.unreachable_lag = unreachable_lag

    def read_replica(self, replica) -> Dict[str, Any]:
        """
        Read one replica's lag.

        Returns:
            Reading dict: ``replica`` (host:port), ``seconds_behind`` (int or None)
            and ``unreachable``
        """
        name = replica.describe()
        try:
            rows = replica.fetch_all(self.status_query)
        except pymysql.err.MySQLError as e:
            # Expected while a replica is down (e.g. for a backup); reconnect next cycle
            logger.warning(f"Replica {name} unreachable, assuming maximum lag: {e}")
            replica.disconnect()
            return {'replica': name, 'seconds_behind': None, 'unreachable': True}

        try:
            lag = _parse_lag(rows)
        except (TypeError, ValueError) as e:
            logger.warning(f"Unparseable replica status from {name}: {e}")
            lag = None

        if lag is None:
            logger.warning(f"Replica {name} reports no replication lag, assuming maximum lag")
            return {'replica': name, 'seconds_behind': None, 'unreachable': True}

        return {'replica': name, 'seconds_behind': lag, 'unreachable': False}

    def readings(self) -> List[Dict[str, Any]]:
        """Read all replicas concurrently; each replica has its own connection."""
        if not self.replicas:
            return []
        with ThreadPoolExecutor(max_workers=len(self.replicas)) as executor:
            return list(executor.map(self.read_replica, self.replicas))

    def max_lag(self) -> int:
        """Worst-case lag in seconds across all replicas (0 without replicas)."""
        max_lag = 0
        for reading in self.readings():
            lag = self.unreachable_lag if reading['unreachable'] else reading['seconds_behind']
            max_lag = max(max_lag, lag)
        logger.info(f"Max replica lag at {max_lag}")
        return max_lag
