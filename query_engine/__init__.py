"""
Query Engine - Dynamic Query Execution Against External Systems

Runs declarative queries against administrator-registered external systems
(REST, GraphQL, HTTP endpoints), reshapes the results through declared
transforms and caches them within a freshness window.

Package Structure:
    - core: Infrastructure (errors, logging, observability)
    - domain: Domain models (ExternalSystem, CustomQuery, transform AST)
    - connectors: Auth headers, system registry, protocol executors, dispatcher
    - transforms: Filter/map/sort/limit pipeline and aggregation
    - cache: TTL result cache
    - services: Query execution, saved query lifecycle, execution logging
    - storage: Record store protocols and the in-memory store
    - api: FastAPI REST surface
"""

__version__ = "1.0.0"
__author__ = "Query Engine Team"
