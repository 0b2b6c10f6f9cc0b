"""
Repository pattern for the usage ledger.

Tracked usage metrics are appended to a SQLite table and never modified.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..core.models import Price, TokenCount, UsageMetrics
from .db import DEFAULT_DB_PATH, get_connection

logger = logging.getLogger(__name__)

_COLUMNS = """timestamp, provider, model, input_tokens, response_tokens,
              total_tokens, input_cost, output_cost, total_cost, currency,
              duration_ms"""


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the usage_metrics table if it doesn't exist.

    This creates an append-only ledger; no UPDATE or DELETE operations
    are performed on this table.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS usage_metrics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                provider TEXT NOT NULL,
                model TEXT NOT NULL,
                input_tokens INTEGER NOT NULL,
                response_tokens INTEGER NOT NULL,
                total_tokens INTEGER NOT NULL,
                input_cost REAL NOT NULL,
                output_cost REAL NOT NULL,
                total_cost REAL NOT NULL,
                currency TEXT NOT NULL,
                duration_ms REAL NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


def _to_row(metrics: UsageMetrics) -> tuple:
    return (
        metrics.timestamp.isoformat(),
        metrics.provider,
        metrics.model,
        metrics.token_count.input_tokens,
        metrics.token_count.response_tokens,
        metrics.token_count.total_tokens,
        metrics.price.input_cost,
        metrics.price.output_cost,
        metrics.price.total_cost,
        metrics.price.currency,
        metrics.duration.total_seconds() * 1000,
    )


def _from_row(row) -> UsageMetrics:
    return UsageMetrics(
        token_count=TokenCount(row[3], row[4], row[5]),
        price=Price.of(row[6], row[7], row[9]),
        duration=timedelta(milliseconds=row[10]),
        timestamp=datetime.fromisoformat(row[0]),
        model=row[2],
        provider=row[1]
    )


def insert_usage_metrics(metrics: UsageMetrics, db_path: str = DEFAULT_DB_PATH) -> None:
    """Append a single usage record to the ledger.

    Args:
        metrics: The usage metrics to record
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute(
            f"INSERT INTO usage_metrics ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            _to_row(metrics)
        )
        conn.commit()
    finally:
        conn.close()


def fetch_recent_usage_metrics(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    limit: int = 100,
    db_path: str = DEFAULT_DB_PATH
) -> List[UsageMetrics]:
    """Fetch recent usage records, optionally filtered by provider and model.

    Args:
        provider: Optional filter for a specific provider
        model: Optional filter for a specific model
        limit: Maximum number of records to return
        db_path: Path to SQLite database file

    Returns:
        List of usage metrics ordered by timestamp (newest first)
    """
    conn = get_connection(db_path)
    try:
        query = f"SELECT {_COLUMNS} FROM usage_metrics"
        params: List[Any] = []
        conditions = []

        if provider:
            conditions.append("provider = ?")
            params.append(provider)
        if model:
            conditions.append("model = ?")
            params.append(model)
        if conditions:
            query += " WHERE " + " AND ".join(conditions)

        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        cursor = conn.execute(query, params)
        return [_from_row(row) for row in cursor.fetchall()]
    finally:
        conn.close()


class UsageRepository:
    """Repository for recording and reading tracked usage.

    Wraps the module-level functions for a fixed database path.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, initialize: bool = True):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
            initialize: Create the table if it does not exist yet
        """
        self.db_path = db_path
        if initialize:
            initialize_schema(db_path)

    def record(self, metrics: UsageMetrics) -> None:
        insert_usage_metrics(metrics, self.db_path)
        logger.debug("Recorded usage for %s/%s", metrics.provider, metrics.model)

    def get_recent(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        limit: int = 100
    ) -> List[UsageMetrics]:
        return fetch_recent_usage_metrics(provider, model, limit, self.db_path)

    def get_usage_stats(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        days: int = 30
    ) -> Dict[str, float]:
        """Get usage statistics for the specified time period.

        Args:
            provider: Optional filter for a specific provider
            model: Optional filter for a specific model
            days: Number of days to include in the statistics

        Returns:
            Dictionary containing usage statistics
        """
        conn = get_connection(self.db_path)
        try:
            cutoff = (datetime.now() - timedelta(days=days)).isoformat()

            query = """
                SELECT
                    COUNT(*) as total_requests,
                    SUM(total_cost) as total_cost,
                    AVG(total_cost) as avg_cost,
                    SUM(total_tokens) as total_tokens
                FROM usage_metrics
                WHERE timestamp >= ?
            """
            params: List[Any] = [cutoff]

            if provider:
                query += " AND provider = ?"
                params.append(provider)
            if model:
                query += " AND model = ?"
                params.append(model)

            row = conn.execute(query, params).fetchone()

            return {
                "total_requests": row[0] or 0,
                "total_cost": float(row[1] or 0),
                "avg_cost": float(row[2] or 0),
                "total_tokens": row[3] or 0
            }
        finally:
            conn.close()
