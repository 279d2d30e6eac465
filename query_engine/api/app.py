"""
FastAPI Application - Query Engine REST API

Exposes ad-hoc and saved query execution against registered external
systems. Execution endpoints always answer 200 with the result envelope
(failures carry success=false); 4xx responses are reserved for
authentication, unknown records and ownership.

Usage:
    # Development
    uvicorn query_engine.api.app:app --reload --port 8000

    # Production
    uvicorn query_engine.api.app:app --host 0.0.0.0 --port 8000 --workers 4

API Documentation:
    http://localhost:8000/docs (Swagger UI)
    http://localhost:8000/redoc (ReDoc)
"""

from datetime import datetime
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field

from query_engine.api.middleware import RateLimitMiddleware, RequestIDMiddleware
from query_engine.core import get_logger, setup_logging, setup_observability
from query_engine.core.exceptions import (
    AccessDeniedError,
    ConfigurationError,
    QueryEngineError,
    QueryNotFoundError,
    SystemInactiveError,
    SystemNotFoundError,
    ValidationError,
)
from query_engine.domain.systems import ExternalSystem
from query_engine.services.custom_queries import CustomQueryService
from query_engine.services.query_service import QueryExecutionService
from query_engine.storage.base import RecordStore
from query_engine.storage.memory import InMemoryStore
from query_engine.utils.error_handling import log_and_continue

API_VERSION = "1.0.0"

setup_logging(level="INFO", json_output=False)
setup_observability()

logger = get_logger(__name__)

security = HTTPBasic()

ERROR_STATUS: dict[type[QueryEngineError], int] = {
    QueryNotFoundError: status.HTTP_404_NOT_FOUND,
    SystemNotFoundError: status.HTTP_404_NOT_FOUND,
    AccessDeniedError: status.HTTP_403_FORBIDDEN,
    SystemInactiveError: status.HTTP_409_CONFLICT,
    ValidationError: status.HTTP_400_BAD_REQUEST,
}


# ============================================================
# Request Models
# ============================================================


class ExecuteQueryRequest(BaseModel):
    query: str = Field(min_length=1)
    method: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    transformations: list[str] = Field(default_factory=list)
    timeout: float | None = Field(default=None, gt=0)
    force_refresh: bool = False
    cache_enabled: bool = True


class CustomQueryUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    system_id: int | str | None = None
    query: str | None = None
    method: str | None = None
    parameters: dict[str, Any] | None = None
    transformations: list[str] | None = None
    refresh_interval: int | None = Field(default=None, ge=0)
    cache_enabled: bool | None = None
    visibility: str | None = None
    tags: list[str] | None = None


class CustomQueryCreate(CustomQueryUpdate):
    system_id: int | str
    query: str = Field(min_length=1)


def _load_default_store() -> InMemoryStore:
    from query_engine.secure_config import get_config

    systems_file = get_config().get_engine_config().systems_file
    return InMemoryStore.from_systems_file(systems_file) if systems_file else InMemoryStore()


def create_app(
    store: RecordStore | None = None,
    service: QueryExecutionService | None = None,
    queries: CustomQueryService | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        store: Record store (defaults to an InMemoryStore seeded from QUERY_ENGINE_SYSTEMS_FILE)
        service: Query execution service (defaults to one built over store)
        queries: Custom query service (defaults to one sharing service's result cache)
    """
    if store is None:
        store = service.store if service is not None else _load_default_store()
    service = service or QueryExecutionService(store)
    queries = queries or CustomQueryService(store, service.cache)

    app = FastAPI(
        title="Query Engine API",
        description="Declarative queries against registered external systems",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.store = store
    app.state.service = service
    app.state.queries = queries

    # last added is executed first
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware, requests_per_minute=60, requests_per_hour=1000)

    @app.on_event("startup")
    async def startup_event():
        logger.info("Query Engine API starting up")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Query Engine API shutting down")

    @app.exception_handler(QueryEngineError)
    async def engine_error_handler(request: Request, exc: QueryEngineError):
        status_code = next(
            (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        if status_code >= 500:
            logger.error("Unhandled engine error", exc_info=exc, extra={"path": request.url.path})
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    # ============================================================
    # Authentication
    # ============================================================

    def verify_credentials(credentials: Annotated[HTTPBasicCredentials, Depends(security)]) -> str:
        """
        Verify HTTP Basic credentials against API_USERNAME / API_PASSWORD.

        Returns:
            The authenticated username, used as the caller's identity
        """
        import secrets

        from query_engine.secure_config import get_config

        try:
            api_auth = get_config().get_api_auth_config()
        except ConfigurationError as e:
            logger.error("API authentication not configured", extra={"error": str(e)})
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="API authentication not configured",
            )

        is_correct_username = secrets.compare_digest(credentials.username.encode(), api_auth.username.encode())
        is_correct_password = secrets.compare_digest(credentials.password.encode(), api_auth.password.encode())

        if not (is_correct_username and is_correct_password):
            logger.warning("Authentication failed", extra={"username": credentials.username})
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials",
                headers={"WWW-Authenticate": "Basic"},
            )

        username: str = credentials.username
        return username

    # ============================================================
    # Health Check
    # ============================================================

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Liveness probe with the number of registered systems."""
        systems = await store.list_external_systems()
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "version": API_VERSION,
            "registered_systems": len(systems),
        }

    # ============================================================
    # External Systems
    # ============================================================

    @app.get("/api/v1/systems", tags=["Systems"])
    async def list_systems(username: str = Depends(verify_credentials)):
        """List registered systems without their credentials."""
        summaries = []
        for record in await store.list_external_systems():
            try:
                summaries.append(ExternalSystem.from_dict(record).to_summary())
            except QueryEngineError as e:
                log_and_continue(logger, e, {"system_id": record.get("id")}, "System record parsing")

        logger.info("Systems listed", extra={"username": username, "count": len(summaries)})
        return {"systems": summaries, "count": len(summaries)}

    @app.post("/api/v1/systems/{system_id}/query", tags=["Execution"])
    async def execute_query(system_id: str, body: ExecuteQueryRequest, username: str = Depends(verify_credentials)):
        """Run an ad-hoc query. Always 200; see success/error in the envelope."""
        result = await service.execute_query(
            system_id=system_id,
            query=body.query,
            method=body.method,
            parameters=body.parameters,
            transformations=body.transformations,
            timeout=body.timeout,
            force_refresh=body.force_refresh,
            user_id=username,
            cache_enabled=body.cache_enabled,
        )
        return result.to_dict()

    @app.post("/api/v1/systems/{system_id}/test", tags=["Execution"])
    async def test_connection(system_id: str, username: str = Depends(verify_credentials)):
        """Probe the system's health-check endpoint."""
        logger.info("Connection test requested", extra={"username": username, "system_id": system_id})
        return await service.test_connection(system_id)

    @app.delete("/api/v1/cache", tags=["Execution"])
    async def clear_cache(system_id: str | None = None, username: str = Depends(verify_credentials)):
        """Evict cached system configs and results (one system, or all)."""
        service.clear_cache(system_id)
        logger.info("Cache cleared via API", extra={"username": username, "system_id": system_id})
        return {"message": "Cache cleared", "system_id": system_id}

    # ============================================================
    # Custom Queries
    # ============================================================

    @app.get("/api/v1/queries", tags=["Custom Queries"])
    async def list_queries(username: str = Depends(verify_credentials)):
        """Queries owned by the caller plus all public ones."""
        visible = await queries.list_visible(username)
        return {"queries": [query.to_dict() for query in visible], "count": len(visible)}

    @app.post("/api/v1/queries", tags=["Custom Queries"], status_code=status.HTTP_201_CREATED)
    async def create_query(body: CustomQueryCreate, username: str = Depends(verify_credentials)):
        created = await queries.create(username, body.model_dump(exclude_none=True))
        return created.to_dict()

    @app.put("/api/v1/queries/{query_id}", tags=["Custom Queries"])
    async def update_query(query_id: int, body: CustomQueryUpdate, username: str = Depends(verify_credentials)):
        """Owner-only update; drops the query's cached results."""
        updated = await queries.update(query_id, username, body.model_dump(exclude_unset=True))
        return updated.to_dict()

    @app.delete("/api/v1/queries/{query_id}", tags=["Custom Queries"])
    async def delete_query(query_id: int, username: str = Depends(verify_credentials)):
        """Owner-only soft delete."""
        await queries.delete(query_id, username)
        return {"message": "Query deleted", "query_id": query_id}

    @app.post("/api/v1/queries/{query_id}/execute", tags=["Custom Queries"])
    async def execute_saved_query(
        query_id: int, force_refresh: bool = False, username: str = Depends(verify_credentials)
    ):
        """Run a saved query visible to the caller. Always 200 once access is granted."""
        custom_query = await queries.get_visible(query_id, username)
        result = await service.execute_custom_query(custom_query, user_id=username, force_refresh=force_refresh)
        return result.to_dict()

    @app.get("/api/v1/queries/{query_id}/executions", tags=["Custom Queries"])
    async def list_executions(query_id: int, limit: int = 50, username: str = Depends(verify_credentials)):
        """Most recent execution log entries of a visible query, newest first."""
        await queries.get_visible(query_id, username)
        entries = await store.list_query_executions(query_id, limit=max(1, min(limit, 500)))
        return {"executions": [entry.to_dict() for entry in entries], "count": len(entries)}

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    from query_engine.secure_config import validate_config_on_startup

    validate_config_on_startup(["engine", "api", "observability"])
    logger.info("Starting Query Engine API", extra={"docs": "http://localhost:8000/docs"})
    uvicorn.run("query_engine.api.app:app", host="127.0.0.1", port=8000, reload=True, log_level="info")
