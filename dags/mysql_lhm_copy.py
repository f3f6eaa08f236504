"""
MySQL Online Table Copy DAG

This DAG runs the data-copy phase of an online schema change: it copies all
rows of a live origin table into an already created destination (shadow)
table, in adaptive chunks, throttled by replica lag.

Requires:
- Destination table already exists with change-capture triggers in place
- Origin table has a single-column integer primary key

Replica throttling is configured on the MySQL connection extras:
- "auto_detect_replicas": true to find replicas through the processlist
- "replica_dbs": [{"host": "...", "port": 3306}] for explicit replicas

Chunk sizing params left empty fall back to LHM_STRIDE, LHM_STRIDE_MAX and
LHM_TARGET_QUERY_SECONDS from the worker environment, then to built-in defaults.

Re-running the DAG is safe: rows already copied are skipped (INSERT IGNORE).
"""

from airflow.sdk import dag, task
from airflow.models.param import Param
from pendulum import datetime
from datetime import timedelta
from typing import Dict, Any
import logging

from mysql_lhm import chunker

logger = logging.getLogger(__name__)


@dag(
    start_date=datetime(2025, 1, 1),
    schedule=None,
    catchup=False,
    max_active_runs=1,
    is_paused_upon_creation=False,
    doc_md=__doc__,
    default_args={
        "owner": "data-team",
        "retries": 2,
        "retry_delay": timedelta(minutes=1),
    },
    params={
        "mysql_conn_id": Param(
            default="mysql_primary",
            type="string",
            description="MySQL connection ID of the primary"
        ),
        "origin_table": Param(
            default="",
            type="string",
            description="Table to copy from"
        ),
        "destination_table": Param(
            default="",
            type="string",
            description="Shadow table to copy into"
        ),
        "stride": Param(
            default=None,
            type=["null", "integer"],
            minimum=1,
            description="Initial rows per chunk (empty: LHM_STRIDE or 2000)"
        ),
        "stride_max": Param(
            default=None,
            type=["null", "integer"],
            minimum=1,
            description="Maximum rows per chunk (empty: LHM_STRIDE_MAX or 20000)"
        ),
        "target_query_seconds": Param(
            default=None,
            type=["null", "number"],
            exclusiveMinimum=0,
            description="Target seconds per chunk statement (empty: LHM_TARGET_QUERY_SECONDS or 0.75)"
        ),
        "renames": Param(
            default={},
            type="object",
            description="Origin to destination column renames"
        ),
    },
    tags=["migration", "mysql", "online-schema-change"],
)
def mysql_lhm_copy():
    """
    Copy DAG for an online schema change.
    """

    @task
    def copy_rows(**context) -> Dict[str, Any]:
        """
        Copy all rows from the origin table into the destination table.

        Returns:
            Copy result dictionary
        """
        params = context["params"]
        if not params["origin_table"] or not params["destination_table"]:
            raise ValueError("origin_table and destination_table are required")

        logger.info(f"Copying {params['origin_table']} -> {params['destination_table']}")

        return chunker.copy_table(
            mysql_conn_id=params["mysql_conn_id"],
            origin_table=params["origin_table"],
            destination_table=params["destination_table"],
            options={
                "stride": params["stride"],
                "stride_max": params["stride_max"],
                "target_query_seconds": params["target_query_seconds"],
            },
            renames=params.get("renames") or None,
        )

    @task
    def report_copy(result: Dict[str, Any]) -> str:
        """Log a summary of the copy."""
        elapsed = result['elapsed_time_seconds']
        rate = result['rows_copied'] / elapsed if elapsed > 0 else 0
        summary = (
            f"Copied {result['rows_copied']:,} rows from {result['origin_table']} "
            f"to {result['destination_table']} in {result['chunks_processed']} chunks, "
            f"{elapsed:.2f} seconds ({rate:,.0f} rows/sec)"
        )
        logger.info(summary)
        return summary

    report_copy(copy_rows())


copy_dag = mysql_lhm_copy()
