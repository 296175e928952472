"""
PostgreSQL usage store.
"""

import logging
from datetime import datetime
from typing import Optional

import asyncpg

from ..core.store import UsageStore
from ..models.usage import RateLimitScope, RateLimitWindow, UsageRecord

logger = logging.getLogger(__name__)


# Shared by the increment upsert: true when the stored window has ended.
_WINDOW_EXPIRED = (
    "llm_rate_limits.window_start"
    " + make_interval(secs => llm_rate_limits.window_size_sec) < EXCLUDED.window_start"
)


class PostgresUsageStore(UsageStore):
    """
    Usage records and rate-limit windows in PostgreSQL.

    Windows are unique per (integration, scope, scope id); the increment is a
    single upsert so concurrent gateway processes never lose a count.
    """

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize store.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    async def init_tables(self):
        """Initialize database tables."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS llm_usage (
                    id BIGSERIAL PRIMARY KEY,
                    integration_id INTEGER NOT NULL,
                    user_id VARCHAR(255) NOT NULL,
                    project_id INTEGER,
                    feature VARCHAR(255) NOT NULL,
                    model VARCHAR(255) NOT NULL,
                    prompt_tokens INTEGER DEFAULT 0,
                    completion_tokens INTEGER DEFAULT 0,
                    total_tokens INTEGER DEFAULT 0,
                    input_cost DECIMAL(20, 10) DEFAULT 0,
                    output_cost DECIMAL(20, 10) DEFAULT 0,
                    total_cost DECIMAL(20, 10) DEFAULT 0,
                    success BOOLEAN NOT NULL,
                    error TEXT,
                    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS llm_rate_limits (
                    integration_id INTEGER NOT NULL,
                    scope VARCHAR(50) NOT NULL,
                    scope_id VARCHAR(255) NOT NULL,
                    window_start TIMESTAMPTZ NOT NULL,
                    window_size_sec INTEGER NOT NULL DEFAULT 60,
                    max_requests INTEGER NOT NULL DEFAULT 60,
                    current_requests INTEGER NOT NULL DEFAULT 0,
                    block_on_exceed BOOLEAN NOT NULL DEFAULT TRUE,
                    is_active BOOLEAN NOT NULL DEFAULT TRUE,
                    updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (integration_id, scope, scope_id)
                )
            """)

            await conn.execute("CREATE INDEX IF NOT EXISTS idx_llm_usage_integration ON llm_usage(integration_id)")
            await conn.execute("CREATE INDEX IF NOT EXISTS idx_llm_usage_user ON llm_usage(user_id)")
            await conn.execute("CREATE INDEX IF NOT EXISTS idx_llm_usage_created ON llm_usage(created_at)")

            logger.info("LLM usage tables initialized")

    async def record_usage(self, record: UsageRecord) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute("""
                INSERT INTO llm_usage
                (integration_id, user_id, project_id, feature, model,
                 prompt_tokens, completion_tokens, total_tokens,
                 input_cost, output_cost, total_cost, success, error, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
            """,
                record.integration_id,
                record.user_id,
                record.project_id,
                record.feature,
                record.model,
                record.prompt_tokens,
                record.completion_tokens,
                record.total_tokens,
                record.input_cost,
                record.output_cost,
                record.total_cost,
                record.success,
                record.error,
                record.created_at,
            )

    async def get_rate_limit(
        self, integration_id: int, scope: RateLimitScope, scope_id: str
    ) -> Optional[RateLimitWindow]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT * FROM llm_rate_limits
                WHERE integration_id = $1 AND scope = $2 AND scope_id = $3
            """, integration_id, RateLimitScope(scope).value, scope_id)
            if row:
                return self._row_to_window(row)
            return None

    async def reset_rate_limit(
        self, integration_id: int, scope: RateLimitScope, scope_id: str, now: datetime
    ) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute("""
                UPDATE llm_rate_limits
                SET current_requests = 0, window_start = $4, updated_at = $4
                WHERE integration_id = $1 AND scope = $2 AND scope_id = $3
            """, integration_id, RateLimitScope(scope).value, scope_id, now)

    async def increment_rate_limit(
        self,
        integration_id: int,
        scope: RateLimitScope,
        scope_id: str,
        window_size_sec: int,
        max_requests: int,
        now: datetime,
    ) -> RateLimitWindow:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(f"""
                INSERT INTO llm_rate_limits
                (integration_id, scope, scope_id, window_start, window_size_sec,
                 max_requests, current_requests, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, 1, $4)
                ON CONFLICT (integration_id, scope, scope_id) DO UPDATE SET
                    current_requests = CASE WHEN {_WINDOW_EXPIRED}
                        THEN 1 ELSE llm_rate_limits.current_requests + 1 END,
                    window_start = CASE WHEN {_WINDOW_EXPIRED}
                        THEN EXCLUDED.window_start ELSE llm_rate_limits.window_start END,
                    updated_at = EXCLUDED.window_start
                RETURNING *
            """,
                integration_id,
                RateLimitScope(scope).value,
                scope_id,
                now,
                window_size_sec,
                max_requests,
            )
            return self._row_to_window(row)

    def _row_to_window(self, row) -> RateLimitWindow:
        return RateLimitWindow(
            integration_id=row["integration_id"],
            scope=RateLimitScope(row["scope"]),
            scope_id=row["scope_id"],
            window_start=row["window_start"],
            window_size_sec=row["window_size_sec"],
            max_requests=row["max_requests"],
            current_requests=row["current_requests"],
            block_on_exceed=row["block_on_exceed"],
            is_active=row["is_active"],
        )
