"""
Mock components for testing sql_insight.

These mocks replay realistic MySQL / PostgreSQL responses (golden_data.py)
through DB-API shaped connections so collectors, probes and hot-switch
sessions run without a live server.
"""

from .mock_db import (
    QueryResult,
    MockCursor,
    MockConnection,
    MockConnectionFactory,
)
from .golden_data import (
    SLOW_LOG_SAMPLE,
    MYSQL_ERROR_LOG,
    POSTGRES_ERROR_LOG,
    GRANTS_SUPER,
    GRANTS_READ_ONLY,
    PG_STATEMENT_LOG_DEFAULT,
    PG_STATEMENT_LOG_AUTO_CONF,
    slow_log_entry,
    workload_slow_log,
    mysql_rules,
    postgres_rules,
)

__all__ = [
    # DB-API mocks
    'QueryResult',
    'MockCursor',
    'MockConnection',
    'MockConnectionFactory',
    # Log excerpts
    'SLOW_LOG_SAMPLE',
    'MYSQL_ERROR_LOG',
    'POSTGRES_ERROR_LOG',
    'slow_log_entry',
    'workload_slow_log',
    # Server responses
    'GRANTS_SUPER',
    'GRANTS_READ_ONLY',
    'PG_STATEMENT_LOG_DEFAULT',
    'PG_STATEMENT_LOG_AUTO_CONF',
    'mysql_rules',
    'postgres_rules',
]
