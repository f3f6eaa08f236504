"""
Shared fixtures for the copy engine tests.

FakeMySql scripts the handful of statements the Chunker issues against an
in-memory origin/destination pair, so whole copies can run without a server.
"""

import re

import pytest

from mysql_lhm.table_metadata import Table


class FakeMySql:
    """In-memory stand-in for the primary adapter."""

    def __init__(self, origin_keys, destination_keys=(), estimated_rows=None, warnings=None):
        self.origin = sorted(origin_keys)
        self.destination = set(destination_keys)
        self.estimated_rows = len(self.origin) if estimated_rows is None else estimated_rows
        # one list of SHOW WARNINGS rows per INSERT, in order; beyond the script,
        # duplicates produce 1062 warnings as INSERT IGNORE does
        self.warning_script = list(warnings or [])
        self.execute_failures = []
        self.options = {}
        self.statements = []
        self.copy_starts = []
        self.disconnects = 0
        self._last_warnings = []

    def describe(self):
        return "primary:3306"

    def inserts(self):
        return [sql for sql in self.statements if sql.startswith("INSERT")]

    def execute(self, sql):
        self.statements.append(sql)
        if self.execute_failures:
            raise self.execute_failures.pop(0)

        start = int(re.search(r">= (-?\d+)", sql).group(1))
        limit = int(re.search(r"LIMIT (\d+)", sql).group(1))
        chunk = [key for key in self.origin if key >= start][:limit]
        inserted = [key for key in chunk if key not in self.destination]
        self.destination.update(inserted)
        self.copy_starts.append(start)

        if self.warning_script:
            self._last_warnings = self.warning_script.pop(0)
        else:
            self._last_warnings = [
                {'Level': 'Warning', 'Code': 1062, 'Message': f"Duplicate entry '{key}' for key 'PRIMARY'"}
                for key in chunk if key not in inserted
            ]
        return {'rows_affected': len(inserted), 'rows': []}

    def fetch_row(self, sql):
        self.statements.append(sql)
        if sql.startswith("SELECT MIN("):
            if not self.origin:
                return (None, None)
            return (self.origin[0], self.origin[-1])
        if "OFFSET" in sql:
            start = int(re.search(r">= (-?\d+)", sql).group(1))
            offset = int(re.search(r"OFFSET (\d+)", sql).group(1))
            remaining = [key for key in self.origin if key >= start]
            if offset < len(remaining):
                return (remaining[offset],)
            return None
        raise AssertionError(f"Unexpected query: {sql}")

    def fetch_all(self, sql):
        self.statements.append(sql)
        if sql.startswith("EXPLAIN"):
            return [{'id': 1, 'select_type': 'SIMPLE', 'rows': self.estimated_rows}]
        if sql == "SHOW WARNINGS":
            return list(self._last_warnings)
        raise AssertionError(f"Unexpected query: {sql}")

    def disconnect(self):
        self.disconnects += 1


class FakeReplica:
    """Replica adapter answering the replication status query."""

    def __init__(self, name="replica-1:3306", rows=None, error=None):
        self.name = name
        self.rows = rows if rows is not None else [{'Seconds_Behind_Master': 0}]
        self.error = error
        self.queries = []
        self.disconnects = 0

    def describe(self):
        return self.name

    def fetch_all(self, sql):
        self.queries.append(sql)
        if self.error is not None:
            raise self.error
        return list(self.rows)

    def disconnect(self):
        self.disconnects += 1


@pytest.fixture
def origin_table():
    return Table(
        'users',
        [
            {'column_name': 'id', 'data_type': 'int'},
            {'column_name': 'name', 'data_type': 'varchar'},
            {'column_name': 'legacy', 'data_type': 'varchar'},
        ],
        ['id'],
    )


@pytest.fixture
def destination_table():
    return Table(
        'lhmn_users',
        [
            {'column_name': 'id', 'data_type': 'bigint'},
            {'column_name': 'name', 'data_type': 'varchar'},
            {'column_name': 'email', 'data_type': 'varchar'},
        ],
        ['id'],
    )


@pytest.fixture
def make_fake_mysql():
    return FakeMySql


@pytest.fixture
def make_fake_replica():
    return FakeReplica
