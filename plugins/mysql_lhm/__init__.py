"""
MySQL Online Table Copy Utilities

This package provides the data-copy engine of an online schema change: it
copies every row of a live origin table into a shadow destination table in
adaptive chunks, using Apache Airflow connections for configuration.

Modules:
- mysql_helper: pymysql adapter configured from Airflow connections
- sql_helper: Identifier quoting and column rendering
- table_metadata: Table metadata and origin/destination column intersection
- retry_policy: Retry of transient lock/deadlock/interruption failures
- warning_classifier: Allow-list for statement warnings
- pacer: Adaptive chunk sizing from observed throughput
- replica_lag: Replica discovery and lag measurement
- throttle: Inter-chunk delay driven by replica lag
- chunker: The copy loop
- exceptions: Fatal copy errors

Configuration:
- LHM_STRIDE=N: Initial rows per chunk (default 2000)
- LHM_STRIDE_MAX=N: Maximum rows per chunk (default 20000)
- LHM_TARGET_QUERY_SECONDS=F: Target duration of each chunk (default 0.75)
"""

__version__ = "1.0.0"

from mysql_lhm import exceptions
from mysql_lhm import sql_helper
from mysql_lhm import table_metadata
from mysql_lhm import retry_policy
from mysql_lhm import warning_classifier
from mysql_lhm import pacer
from mysql_lhm import replica_lag
from mysql_lhm import throttle
from mysql_lhm import chunker

# mysql_helper needs Airflow; loaded lazily by chunker.copy_table
# from mysql_lhm import mysql_helper

__all__ = [
    "exceptions",
    "mysql_helper",
    "sql_helper",
    "table_metadata",
    "retry_policy",
    "warning_classifier",
    "pacer",
    "replica_lag",
    "throttle",
    "chunker",
]
