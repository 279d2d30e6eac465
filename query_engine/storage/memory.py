"""
In-memory record store

Implements SystemStore, QueryStore and ExecutionLogStore over plain dicts.
Used by the REST app when no database-backed store is injected, and by tests.

Usage:
    store = InMemoryStore()
    store.add_external_system({"id": 1, "systemName": "jira", "baseUrl": "https://jira.example.com", ...})

    # or seed from a JSON file (list of records, or {"systems": [...]})
    store = InMemoryStore.from_systems_file(Path("systems.json"))
"""

import copy
import itertools
import json
from collections import defaultdict
from pathlib import Path
from typing import Any

from query_engine.core.exceptions import ConfigurationError
from query_engine.core.logging_config import get_logger
from query_engine.domain.queries import CustomQuery, ExecutionLogEntry

logger = get_logger(__name__)


class InMemoryStore:
    """Process-local store for systems, saved queries and execution logs."""

    def __init__(self, max_log_entries_per_query: int = 500):
        self._systems: dict[str, dict[str, Any]] = {}
        self._queries: dict[int, CustomQuery] = {}
        self._logs: dict[int | None, list[ExecutionLogEntry]] = defaultdict(list)
        self._query_ids = itertools.count(1)
        self.max_log_entries_per_query = max_log_entries_per_query

    @classmethod
    def from_systems_file(cls, path: Path) -> "InMemoryStore":
        """
        Build a store seeded with the external systems declared in a JSON file.

        Raises:
            ConfigurationError: If the file is missing or malformed
        """
        store = cls()
        for record in load_systems_file(path):
            store.add_external_system(record)
        return store

    # ----- External systems -----

    def add_external_system(self, record: dict[str, Any]) -> None:
        """Insert or replace a system record. Callers must clear the registry cache afterwards."""
        if record.get("id") is None:
            raise ConfigurationError("External system record is missing 'id'")
        self._systems[str(record["id"])] = copy.deepcopy(record)

    async def get_external_system(self, system_id: int | str) -> dict[str, Any] | None:
        record = self._systems.get(str(system_id))
        return copy.deepcopy(record) if record else None

    async def list_external_systems(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(record) for record in self._systems.values()]

    # ----- Custom queries -----

    async def get_custom_query(self, query_id: int) -> CustomQuery | None:
        query = self._queries.get(query_id)
        return copy.deepcopy(query) if query else None

    async def list_custom_queries(self) -> list[CustomQuery]:
        return [copy.deepcopy(query) for query in self._queries.values()]

    async def save_custom_query(self, query: CustomQuery) -> CustomQuery:
        if query.id is None:
            query.id = next(self._query_ids)
        self._queries[query.id] = copy.deepcopy(query)
        return copy.deepcopy(query)

    # ----- Execution log -----

    async def log_query_execution(self, entry: ExecutionLogEntry) -> None:
        entries = self._logs[entry.query_id]
        entries.append(entry)
        if len(entries) > self.max_log_entries_per_query:
            del entries[: len(entries) - self.max_log_entries_per_query]

    async def list_query_executions(self, query_id: int, limit: int = 50) -> list[ExecutionLogEntry]:
        return list(reversed(self._logs.get(query_id, [])))[:limit]


def load_systems_file(path: Path) -> list[dict[str, Any]]:
    """
    Read external system records from a JSON file.

    Accepts a list of records or an object with a "systems" list.

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Systems file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Systems file is not valid JSON: {path}: {e}") from e

    records = data.get("systems") if isinstance(data, dict) else data
    if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
        raise ConfigurationError(f"Systems file must contain a list of system records: {path}")

    logger.info("Loaded external system definitions", extra={"path": str(path), "system_count": len(records)})
    return records
