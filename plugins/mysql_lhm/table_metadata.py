"""
Table Metadata Module

Reads column and primary-key metadata for the origin and destination tables
from information_schema, and computes the column intersection the copy
statement projects.
"""

from typing import Any, Dict, List, Optional
from mysql_lhm.sql_helper import quote_sql_literal, validate_sql_identifier
import logging

logger = logging.getLogger(__name__)


class Table:
    """Name, ordered columns and primary key of a MySQL table."""

    def __init__(self, name: str, columns: List[Dict[str, Any]], primary_key: Optional[List[str]] = None):
        """
        Args:
            name: Table name, optionally qualified as 'database.table'
            columns: Column dicts with at least 'column_name', in ordinal order
            primary_key: Primary-key column names in key order
        """
        self.name = name
        self.columns = columns
        self.primary_key = list(primary_key or [])

    @property
    def column_names(self) -> List[str]:
        return [column['column_name'] for column in self.columns]

    def __repr__(self) -> str:
        return f"Table({self.name!r}, columns={self.column_names!r}, primary_key={self.primary_key!r})"


def _split_table_name(name: str):
    """
    Split 'database.table' into (database, table); database may be None.

    Raises:
        ValueError: If either part is not a valid identifier
    """
    if '.' in name:
        database, table = name.split('.', 1)
        return (
            validate_sql_identifier(database.strip('`'), "database name"),
            validate_sql_identifier(table.strip('`'), "table name"),
        )
    return None, validate_sql_identifier(name.strip('`'), "table name")


def load_table(adapter, name: str) -> Table:
    """
    Load table metadata from information_schema.

    Args:
        adapter: Database adapter (fetch_all)
        name: Table name, optionally 'database.table'

    Returns:
        Table with columns and primary key

    Raises:
        ValueError: If the table name is invalid or the table does not exist
    """
    database, table_name = _split_table_name(name)
    schema_filter = quote_sql_literal(database) if database else "DATABASE()"

    columns_query = f"""
    SELECT COLUMN_NAME, DATA_TYPE
    FROM information_schema.COLUMNS
    WHERE TABLE_SCHEMA = {schema_filter} AND TABLE_NAME = {quote_sql_literal(table_name)}
    ORDER BY ORDINAL_POSITION
    """
    rows = adapter.fetch_all(columns_query)
    if not rows:
        raise ValueError(f"Table {name} not found")

    columns = [
        {
            'column_name': row['COLUMN_NAME'],
            'data_type': row['DATA_TYPE'],
        }
        for row in rows
    ]

    pk_query = f"""
    SELECT COLUMN_NAME
    FROM information_schema.KEY_COLUMN_USAGE
    WHERE TABLE_SCHEMA = {schema_filter} AND TABLE_NAME = {quote_sql_literal(table_name)}
      AND CONSTRAINT_NAME = 'PRIMARY'
    ORDER BY ORDINAL_POSITION
    """
    primary_key = [row['COLUMN_NAME'] for row in adapter.fetch_all(pk_query)]

    logger.info(f"Loaded {len(columns)} columns for {name} (primary key: {primary_key or 'none'})")
    return Table(name, columns, primary_key)


class Intersection:
    """
    Columns common to origin and destination, in origin column order.

    ``renames`` maps origin column names to destination column names for
    columns renamed by the schema change; they are copied under the new name.
    """

    def __init__(self, origin: Table, destination: Table, renames: Optional[Dict[str, str]] = None):
        self.origin_table = origin
        self.destination_table = destination
        self.renames = dict(renames or {})

        destination_columns = set(destination.column_names)
        for old_name, new_name in self.renames.items():
            if old_name not in origin.column_names:
                raise ValueError(f"Renamed column {old_name} not found in {origin.name}")
            if new_name not in destination_columns:
                raise ValueError(f"Renamed column {new_name} not found in {destination.name}")

        pairs = []
        for column in origin.column_names:
            if column in self.renames:
                pairs.append((column, self.renames[column]))
            elif column in destination_columns:
                pairs.append((column, column))
        self._pairs = pairs

        if not pairs:
            raise ValueError(f"Tables {origin.name} and {destination.name} have no columns in common")

    def origin(self) -> List[str]:
        return [origin for origin, _ in self._pairs]

    def destination(self) -> List[str]:
        return [destination for _, destination in self._pairs]
