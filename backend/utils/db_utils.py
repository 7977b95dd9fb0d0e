"""
Database utility functions for the Persona Reputation Ledger
"""

import json
from typing import Any, Dict, Optional
from uuid import UUID


class QueryBuilder:
    """Helper class for building parameterized SQL safely"""

    @staticmethod
    def insert(table: str, data: Dict[str, Any], schema: str = "personas") -> tuple[str, list]:
        """Build INSERT query with parameters"""
        columns = list(data.keys())
        placeholders = [f"${i + 1}" for i in range(len(columns))]

        query = f"""
            INSERT INTO {schema}.{table} ({', '.join(columns)})
            VALUES ({', '.join(placeholders)})
            RETURNING *
        """

        return query.strip(), list(data.values())

    @staticmethod
    def update(
        table: str,
        data: Dict[str, Any],
        conditions: Dict[str, Any],
        schema: str = "personas",
        touch_updated_at: bool = True
    ) -> tuple[str, list]:
        """Build UPDATE query with parameters"""
        if not data:
            raise ValueError("No columns to update")

        set_clauses = []
        values = []
        param_index = 1

        for column, value in data.items():
            set_clauses.append(f"{column} = ${param_index}")
            values.append(value)
            param_index += 1

        where_clauses = []
        for column, value in conditions.items():
            where_clauses.append(f"{column} = ${param_index}")
            values.append(value)
            param_index += 1

        set_clause_str = ', '.join(set_clauses)
        if touch_updated_at:
            set_clause_str += ', updated_at = NOW()'

        query = f"""
            UPDATE {schema}.{table}
            SET {set_clause_str}
            WHERE {' AND '.join(where_clauses)}
            RETURNING *
        """

        return query.strip(), values


def to_jsonb(value: Any) -> Optional[str]:
    """Serialize a value for a JSONB parameter; None stays NULL"""
    if value is None:
        return None
    return json.dumps(value, default=_json_default)


def from_jsonb(value: Any, default: Any = None) -> Any:
    """Decode a JSONB column that asyncpg may hand back as text"""
    if value is None:
        return default
    if isinstance(value, str):
        return json.loads(value)
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
