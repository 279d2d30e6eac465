"""
Engine services: query execution, saved query lifecycle, execution logging.
"""

from .custom_queries import CustomQueryService
from .execution_logger import ExecutionLogger
from .query_service import QueryExecutionService, count_records

__all__ = ["QueryExecutionService", "CustomQueryService", "ExecutionLogger", "count_records"]
