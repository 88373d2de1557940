"""
PostgreSQL Level 0 - database counters, settings, relation storage, replication.
"""

from typing import Dict, List, Any

from ..negotiation import capability as cap
from .level0 import Level0Collector, QueryJob


STATUS_METRICS = (
    "numbackends", "xact_commit", "xact_rollback", "blks_read", "blks_hit",
    "tup_returned", "tup_fetched", "tup_inserted", "tup_updated", "tup_deleted",
    "deadlocks",
)


def fetch_pairs(conn, query: str, params=None) -> Dict[str, str]:
    with conn.cursor() as cur:
        cur.execute(query, params)
        return {str(name): str(value) for name, value in cur.fetchall()}


def fetch_status(conn) -> Dict[str, str]:
    """pg_stat_database totals across all databases."""
    columns = ", ".join(f"COALESCE(SUM({m}), 0)::text" for m in STATUS_METRICS)
    with conn.cursor() as cur:
        cur.execute(f"SELECT {columns} FROM pg_stat_database")
        row = cur.fetchone()
    return dict(zip(STATUS_METRICS, (str(v) for v in row)))


def fetch_settings(conn) -> Dict[str, str]:
    return fetch_pairs(conn, "SELECT name, setting FROM pg_settings")


def fetch_table_sizes(conn, limit: int) -> List[Dict[str, Any]]:
    with conn.cursor() as cur:
        cur.execute("""
            SELECT n.nspname, c.relname,
                   COALESCE(c.reltuples, 0)::bigint,
                   COALESCE(pg_relation_size(c.oid), 0)::bigint,
                   COALESCE(pg_indexes_size(c.oid), 0)::bigint,
                   COALESCE(pg_total_relation_size(c.oid), 0)::bigint AS total_length
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE c.relkind = 'r'
              AND n.nspname NOT IN ('pg_catalog', 'information_schema')
            ORDER BY total_length DESC
            LIMIT %s
        """, (limit,))
        rows = cur.fetchall()
    return [
        {
            "table_schema": schema,
            "table_name": name,
            "estimated_rows": int(rows_estimate),
            "data_length": int(data_length),
            "index_length": int(index_length),
            "total_length": int(total_length),
        }
        for schema, name, rows_estimate, data_length, index_length, total_length in rows
    ]


def fetch_indexes(conn, limit: int) -> List[Dict[str, Any]]:
    with conn.cursor() as cur:
        cur.execute("""
            SELECT schemaname, tablename, indexname, indexdef
            FROM pg_indexes
            WHERE schemaname NOT IN ('pg_catalog', 'information_schema')
            ORDER BY schemaname, tablename, indexname
            LIMIT %s
        """, (limit,))
        rows = cur.fetchall()
    return [
        {"table_schema": s, "table_name": t, "index_name": i, "index_def": d}
        for s, t, i, d in rows
    ]


def fetch_replication_status(conn) -> Dict[str, str]:
    return fetch_pairs(conn, """
        SELECT 'is_in_recovery', pg_is_in_recovery()::text
        UNION ALL
        SELECT 'replication_clients', COUNT(*)::text FROM pg_stat_replication
        UNION ALL
        SELECT 'wal_receiver_status',
               COALESCE((SELECT status FROM pg_stat_wal_receiver LIMIT 1), '')
    """)


class PostgresLevel0Collector(Level0Collector):
    """Level 0 for PostgreSQL."""

    engine = "postgres"

    def jobs(self) -> List[QueryJob]:
        return [
            QueryJob("global_status", fetch_status, "failed querying pg_stat_database"),
            QueryJob("global_variables", fetch_settings, "failed querying pg_settings"),
            QueryJob("table_sizes", lambda c: fetch_table_sizes(c, self.table_limit),
                     "failed querying relation sizes"),
            QueryJob("indexes", lambda c: fetch_indexes(c, self.index_limit),
                     "failed querying pg_indexes"),
            QueryJob("replication_status", fetch_replication_status,
                     "failed querying replication status"),
        ]

    def capability_flags(self, results: Dict[str, Any]) -> Dict[str, bool]:
        return {
            cap.STATUS_ACCESS: "global_status" in results,
            cap.SETTINGS_ACCESS: "global_variables" in results,
            cap.STORAGE_ACCESS: "table_sizes" in results and "indexes" in results,
            cap.REPLICATION_STATUS_ACCESS: "replication_status" in results,
        }
