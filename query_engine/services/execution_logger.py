"""
Execution Logger

Writes one ExecutionLogEntry per execution attempt. A failing log store must
never fail the request: failures are logged and routed to the operator
channel (Sentry + Slack) instead.
"""

import asyncio
from typing import Any

from query_engine.core.logging_config import get_logger
from query_engine.core.observability import notify_operator
from query_engine.domain.queries import ExecutionLogEntry, ExecutionStatus
from query_engine.storage.base import ExecutionLogStore

logger = get_logger(__name__)


class ExecutionLogger:
    def __init__(self, store: ExecutionLogStore):
        self.store = store

    async def record(
        self,
        status: ExecutionStatus,
        execution_time_ms: float,
        query_id: int | None = None,
        system_id: int | str | None = None,
        method: str | None = None,
        executed_by: str | None = None,
        result_data: Any = None,
        record_count: int = 0,
        error: str | None = None,
    ) -> bool:
        """
        Persist an execution attempt.

        Returns:
            True if the entry was written, False if the store failed
        """
        entry = ExecutionLogEntry(
            status=status,
            execution_time_ms=round(execution_time_ms, 2),
            query_id=query_id,
            system_id=system_id,
            method=method,
            executed_by=executed_by,
            result_data=result_data,
            record_count=record_count,
            error=error,
        )

        try:
            await self.store.log_query_execution(entry)
        except Exception as e:
            context = {"query_id": query_id, "system_id": system_id, "status": status.value}
            logger.error("Failed to log query execution", exc_info=True, extra=context)
            # Slack delivery is a blocking requests call
            await asyncio.to_thread(notify_operator, "Query execution log write failed", e, context=context)
            return False

        logger.debug(
            "Logged query execution",
            extra={
                "query_id": query_id,
                "system_id": system_id,
                "status": status.value,
                "record_count": record_count,
                "execution_time_ms": entry.execution_time_ms,
            },
        )
        return True
