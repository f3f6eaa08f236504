"""
SQL Helper Module

Identifier quoting, literal quoting and column rendering for the MySQL
statements issued by the copy engine.
"""

import re
from typing import Any, List

# information_schema.COLUMNS.DATA_TYPE values usable as a chunking key
INTEGER_TYPES = frozenset({'tinyint', 'smallint', 'mediumint', 'int', 'integer', 'bigint'})


def validate_sql_identifier(identifier: str, identifier_type: str = "identifier") -> str:
    """
    Validate a SQL identifier (table or column name).

    Args:
        identifier: The identifier to validate
        identifier_type: Type description for error messages (e.g., "table name")

    Returns:
        The validated identifier (unchanged if valid)

    Raises:
        ValueError: If the identifier is invalid

    Rules:
        - Non-empty
        - Max 64 characters (MySQL limit)
        - Letters, digits, underscore and dollar sign only

    Examples:
        >>> validate_sql_identifier("users")
        'users'
        >>> validate_sql_identifier("lhmn_users")
        'lhmn_users'
        >>> validate_sql_identifier("drop; --")  # doctest: +SKIP
        ValueError: Invalid identifier 'drop; --': ...
    """
    if not identifier:
        raise ValueError(f"Invalid {identifier_type}: cannot be empty")

    if len(identifier) > 64:
        raise ValueError(
            f"Invalid {identifier_type}: exceeds maximum length of 64 characters "
            f"(got {len(identifier)} characters)"
        )

    if not re.match(r'^[A-Za-z0-9_$]+$', identifier):
        raise ValueError(
            f"Invalid {identifier_type} '{identifier}': must contain only "
            "alphanumeric characters, underscores and dollar signs"
        )

    return identifier


def quote_sql_literal(value: Any) -> str:
    """
    Quote a value for use in a MySQL WHERE clause.

    Examples:
        >>> quote_sql_literal(123)
        '123'
        >>> quote_sql_literal("O'Brien")
        "'O''Brien'"

    Note:
        This is for VALUES, NOT identifiers. Use SqlHelper.quote_identifier()
        for table and column names.
    """
    if isinstance(value, bool):
        return '1' if value else '0'
    if isinstance(value, int):
        return str(value)

    # MySQL treats backslash as an escape character in string literals
    escaped = str(value).replace('\\', '\\\\').replace("'", "''")
    return f"'{escaped}'"


class SqlHelper:
    """Render identifiers and column lists for the copy statements."""

    def quote_identifier(self, name: str) -> str:
        """
        Backtick-quote an identifier; dotted names are quoted per part.

        >>> SqlHelper().quote_identifier("shop.users")
        '`shop`.`users`'
        """
        if not name:
            raise ValueError("Invalid identifier: cannot be empty")
        parts = name.split('.')
        return '.'.join('`' + part.replace('`', '``') + '`' for part in parts)

    def quote_columns(self, columns: List[str]) -> List[str]:
        return [self.quote_identifier(column) for column in columns]

    def typed_columns(self, quoted_table: str, quoted_columns: List[str]) -> List[str]:
        """
        Render projected columns qualified by the (quoted) origin table.

        Qualifying keeps the projection unambiguous; MySQL coerces each value
        to the destination column type on insert.
        """
        return [f"{quoted_table}.{column}" for column in quoted_columns]

    def extract_primary_key(self, table) -> str:
        """
        Return the single primary-key column of a table.

        Raises:
            ValueError: If the table has no primary key, a composite one, or
                        one that is not an integer column
        """
        primary_key = list(table.primary_key)
        if not primary_key:
            raise ValueError(f"Table {table.name} has no primary key")
        if len(primary_key) > 1:
            raise ValueError(
                f"Table {table.name} has a composite primary key "
                f"({', '.join(primary_key)}); a single-column key is required"
            )

        column = primary_key[0]
        data_type = next(
            (c.get('data_type') for c in table.columns if c['column_name'] == column), None
        )
        if str(data_type).lower() not in INTEGER_TYPES:
            raise ValueError(
                f"Table {table.name} has a non-integer primary key "
                f"({column} {data_type}); an integer key is required"
            )
        return column
