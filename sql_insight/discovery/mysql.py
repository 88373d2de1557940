"""
MySQL Level 0 - status counters, variables, schema storage, replication.
"""

from typing import Dict, List, Optional, Any

from ..negotiation import capability as cap
from .level0 import Level0Collector, QueryJob


SYSTEM_SCHEMAS = ("information_schema", "mysql", "performance_schema", "sys")
_EXCLUDED = ", ".join(f"'{schema}'" for schema in SYSTEM_SCHEMAS)


def _text(value) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def fetch_show_pairs(conn, query: str) -> Dict[str, str]:
    """SHOW ... output as {Variable_name: Value}."""
    cur = conn.cursor()
    try:
        cur.execute(query)
        return {_text(name): _text(value) for name, value in cur.fetchall()}
    finally:
        cur.close()


def fetch_rows(conn, query: str, params=None) -> List[Dict[str, Any]]:
    cur = conn.cursor(dictionary=True)
    try:
        cur.execute(query, params or ())
        return cur.fetchall()
    finally:
        cur.close()


def fetch_table_sizes(conn, limit: int) -> List[Dict[str, Any]]:
    rows = fetch_rows(conn, f"""
        SELECT TABLE_SCHEMA, TABLE_NAME, COALESCE(ENGINE, '') AS ENGINE,
               COALESCE(TABLE_ROWS, 0) AS TABLE_ROWS,
               COALESCE(DATA_LENGTH, 0) AS DATA_LENGTH,
               COALESCE(INDEX_LENGTH, 0) AS INDEX_LENGTH
        FROM information_schema.TABLES
        WHERE TABLE_SCHEMA NOT IN ({_EXCLUDED})
        ORDER BY (COALESCE(DATA_LENGTH, 0) + COALESCE(INDEX_LENGTH, 0)) DESC
        LIMIT %s
    """, (limit,))
    tables = []
    for row in rows:
        data_length = _int(row.get("DATA_LENGTH"))
        index_length = _int(row.get("INDEX_LENGTH"))
        tables.append({
            "table_schema": _text(row.get("TABLE_SCHEMA")),
            "table_name": _text(row.get("TABLE_NAME")),
            "engine": _text(row.get("ENGINE")),
            "table_rows": _int(row.get("TABLE_ROWS")),
            "data_length": data_length,
            "index_length": index_length,
            "total_length": data_length + index_length,
        })
    return tables


def fetch_indexes(conn, limit: int) -> List[Dict[str, Any]]:
    rows = fetch_rows(conn, f"""
        SELECT TABLE_SCHEMA, TABLE_NAME, INDEX_NAME, NON_UNIQUE, SEQ_IN_INDEX,
               COLUMN_NAME, COALESCE(CARDINALITY, 0) AS CARDINALITY
        FROM information_schema.STATISTICS
        WHERE TABLE_SCHEMA NOT IN ({_EXCLUDED})
        ORDER BY TABLE_SCHEMA, TABLE_NAME, INDEX_NAME, SEQ_IN_INDEX
        LIMIT %s
    """, (limit,))
    return [
        {
            "table_schema": _text(row.get("TABLE_SCHEMA")),
            "table_name": _text(row.get("TABLE_NAME")),
            "index_name": _text(row.get("INDEX_NAME")),
            "non_unique": _int(row.get("NON_UNIQUE")),
            "seq_in_index": _int(row.get("SEQ_IN_INDEX")),
            "column_name": _text(row.get("COLUMN_NAME")),
            "cardinality": _int(row.get("CARDINALITY")),
        }
        for row in rows
    ]


def fetch_replication_status(conn) -> Dict[str, Any]:
    """
    SHOW REPLICA STATUS (8.0.22+), falling back to SHOW SLAVE STATUS.

    A server that is not a replica returns no row; that is still access.
    """
    try:
        rows = fetch_rows(conn, "SHOW REPLICA STATUS")
        source = "SHOW REPLICA STATUS"
    except Exception:
        rows = fetch_rows(conn, "SHOW SLAVE STATUS")
        source = "SHOW SLAVE STATUS"
    status: Optional[Dict[str, str]] = None
    if rows:
        status = {str(k): _text(v) for k, v in rows[0].items()}
    return {"source": source, "status": status}


class MysqlLevel0Collector(Level0Collector):
    """Level 0 for MySQL."""

    engine = "mysql"

    def jobs(self) -> List[QueryJob]:
        return [
            QueryJob("global_status", lambda c: fetch_show_pairs(c, "SHOW GLOBAL STATUS"),
                     "SHOW GLOBAL STATUS failed"),
            QueryJob("global_variables", lambda c: fetch_show_pairs(c, "SHOW VARIABLES"),
                     "SHOW VARIABLES failed"),
            QueryJob("table_sizes", lambda c: fetch_table_sizes(c, self.table_limit),
                     "information_schema.TABLES failed"),
            QueryJob("indexes", lambda c: fetch_indexes(c, self.index_limit),
                     "information_schema.STATISTICS failed"),
            QueryJob("replication", fetch_replication_status,
                     "replication status unavailable"),
        ]

    def build_snapshot(self, results: Dict[str, Any]) -> Dict[str, Any]:
        replication = results.get("replication") or {}
        return {
            "global_status": results.get("global_status", {}),
            "global_variables": results.get("global_variables", {}),
            "table_sizes": results.get("table_sizes", []),
            "indexes": results.get("indexes", []),
            "replication_status": replication.get("status"),
            "replication_status_source": replication.get("source"),
        }

    def capability_flags(self, results: Dict[str, Any]) -> Dict[str, bool]:
        return {
            cap.STATUS_ACCESS: "global_status" in results,
            cap.VARIABLES_ACCESS: "global_variables" in results,
            cap.INFORMATION_SCHEMA_ACCESS: "table_sizes" in results and "indexes" in results,
            cap.REPLICATION_STATUS_ACCESS: "replication" in results,
        }
