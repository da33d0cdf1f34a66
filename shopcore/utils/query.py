from typing import Any, Dict, Iterable, List, Tuple
from ..errors import InvalidUpdate

def build_update_query(table: str, key_column: str, key: Any,
                       update_data: Dict[str, Any],
                       allowed: Iterable[str]) -> Tuple[str, List[Any]]:
    """Build a parameterized UPDATE ... RETURNING * for the given columns"""
    allowed = set(allowed)
    unknown = set(update_data) - allowed
    if unknown:
        raise InvalidUpdate(table, unknown)

    query_parts = []
    params = []
    param_count = 1

    for column, value in update_data.items():
        query_parts.append(f"{column} = ${param_count}")
        params.append(value)
        param_count += 1

    if not query_parts:
        raise InvalidUpdate(table, ())

    params.append(key)
    query = f"""
        UPDATE {table}
        SET {', '.join(query_parts)}, updated_at = CURRENT_TIMESTAMP
        WHERE {key_column} = ${param_count}
        RETURNING *
    """
    return query, params

def affected_rows(status: str) -> int:
    """Row count from an asyncpg command tag such as 'DELETE 1'"""
    return int(status.split()[-1])
