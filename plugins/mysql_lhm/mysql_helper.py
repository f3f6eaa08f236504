"""
MySQL Connection Helper

This module provides the database adapter used by the copy engine. It works
with just pymysql and BaseHook, so apache-airflow-providers-mysql is not
required.

Each helper owns one persistent session. The copy statement and the
``SHOW WARNINGS`` that follows it must run on the same session, and each
chunk commits on its own (autocommit).
"""

from typing import Any, Dict, List, Optional, Tuple
from airflow.hooks.base import BaseHook
import pymysql
import pymysql.cursors
import logging

logger = logging.getLogger(__name__)

DEFAULT_MYSQL_PORT = 3306


class MySqlConnectionHelper:
    """
    Adapter exposing execute / fetch_row / fetch_all / disconnect over pymysql.

    Connection parameters come from an Airflow connection, or from an explicit
    config dict (used for replicas derived from the primary's connection).
    """

    def __init__(
        self,
        mysql_conn_id: Optional[str] = None,
        conn_config: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize the MySQL connection helper.

        Args:
            mysql_conn_id: Airflow connection ID for the database
            conn_config: Explicit pymysql connection parameters (skips Airflow lookup)
            options: Explicit adapter options (replica settings); defaults to
                     the Airflow connection extras
        """
        if mysql_conn_id is None and conn_config is None:
            raise ValueError("Either mysql_conn_id or conn_config is required")

        self.conn_id = mysql_conn_id
        self._conn_config = dict(conn_config) if conn_config is not None else None
        self._options = dict(options) if options is not None else None
        self._conn = None

    def _get_connection_config(self) -> Dict[str, Any]:
        """
        Get connection configuration from the Airflow connection.

        Returns:
            Dictionary of pymysql connection parameters
        """
        if self._conn_config is None:
            conn = BaseHook.get_connection(self.conn_id)
            extras = conn.extra_dejson or {}

            self._conn_config = {
                'host': conn.host,
                'port': int(conn.port or DEFAULT_MYSQL_PORT),
                'user': conn.login,
                'password': conn.password or '',
                'database': conn.schema,
                'charset': extras.get('charset', 'utf8mb4'),
                'connect_timeout': int(extras.get('connect_timeout', 10)),
            }
            if self._options is None:
                self._options = extras

        return self._conn_config

    @property
    def options(self) -> Dict[str, Any]:
        """Adapter options (auto_detect_replicas, replica_dbs)."""
        if self._options is None:
            if self.conn_id is not None:
                self._get_connection_config()
            if self._options is None:
                self._options = {}
        return self._options

    def describe(self) -> str:
        config = self._get_connection_config()
        return f"{config.get('host')}:{config.get('port', DEFAULT_MYSQL_PORT)}"

    def replica(self, overrides: Dict[str, Any]) -> "MySqlConnectionHelper":
        """
        Build a helper for a replica of this database.

        Any parameter missing from ``overrides`` is taken from this connection.
        Airflow-style keys (``login``, ``schema``) are accepted as aliases.

        Args:
            overrides: Replica connection descriptor, at least ``host``

        Returns:
            New helper with its own connection
        """
        config = dict(self._get_connection_config())
        aliases = {'login': 'user', 'schema': 'database'}
        for key, value in overrides.items():
            config[aliases.get(key, key)] = value
        if 'port' in config:
            config['port'] = int(config['port'])
        return MySqlConnectionHelper(conn_config=config, options={})

    def get_conn(self) -> pymysql.connections.Connection:
        """
        Get the session connection, connecting on first use or after disconnect().

        Returns:
            pymysql Connection object
        """
        if self._conn is None:
            config = self._get_connection_config()
            self._conn = pymysql.connect(autocommit=True, **config)
            logger.debug(f"Connected to MySQL at {self.describe()}")
        return self._conn

    def disconnect(self) -> None:
        """Close the session; the next statement reconnects."""
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            conn.close()
        except pymysql.err.Error as e:
            logger.debug(f"Ignoring error while closing connection to {self.describe()}: {e}")

    def execute(self, sql: str) -> Dict[str, Any]:
        """
        Execute a statement.

        Args:
            sql: SQL statement to execute

        Returns:
            Dict with ``rows_affected`` and ``rows`` (tuples, empty for DML)
        """
        try:
            with self.get_conn().cursor() as cursor:
                rows_affected = cursor.execute(sql)
                rows = list(cursor.fetchall() or [])
            return {'rows_affected': rows_affected, 'rows': rows}
        except pymysql.err.MySQLError as e:
            logger.error(f"Error executing statement: {e}")
            logger.error(f"SQL: {sql}")
            raise

    def fetch_row(self, sql: str) -> Optional[Tuple[Any, ...]]:
        """
        Execute a query and return the first row as a tuple.

        Returns:
            First row, or None if no rows
        """
        try:
            with self.get_conn().cursor() as cursor:
                cursor.execute(sql)
                return cursor.fetchone()
        except pymysql.err.MySQLError as e:
            logger.error(f"Error executing query: {e}")
            logger.error(f"Query: {sql}")
            raise

    def fetch_all(self, sql: str) -> List[Dict[str, Any]]:
        """
        Execute a query and return all rows as dicts keyed by column name.
        """
        try:
            with self.get_conn().cursor(pymysql.cursors.DictCursor) as cursor:
                cursor.execute(sql)
                return list(cursor.fetchall() or [])
        except pymysql.err.MySQLError as e:
            logger.error(f"Error executing query: {e}")
            logger.error(f"Query: {sql}")
            raise
