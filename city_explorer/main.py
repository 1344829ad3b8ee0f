"""FastAPI presentation boundary: view state, intents, health and metrics."""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import Body, Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from pydantic import ValidationError
from structlog.contextvars import bind_contextvars, clear_contextvars

from city_explorer.errors import CityExplorerError, ConfigurationError, InvalidFilterState
from city_explorer.geo_service.client import CatalogClient
from city_explorer.health.health_check import is_catalog_api_available, is_redis_available
from city_explorer.logging_config import logger
from city_explorer.models.health import Dependencies, HealthResponse, ServiceStatus
from city_explorer.models.intents import intent_adapter
from city_explorer.models.view import SelectionView, ViewState
from city_explorer.redis_cache.preferences import filter_preferences
from city_explorer.reference.countries import COUNTRIES, COUNTRY_TO_CODE
from city_explorer.settings import Settings, load_settings
from city_explorer.store.city_store import CityViewStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the single store instance for the application lifetime."""
    settings = load_settings()
    catalog = CatalogClient(settings)
    store = CityViewStore(
        catalog,
        page_size=settings.page_size,
        region_result_limit=settings.region_result_limit,
        debounce_s=settings.search_debounce_s,
        preferences=filter_preferences(),
    )
    app.state.settings = settings
    app.state.store = store
    await store.start()
    try:
        yield
    finally:
        store.close()
        await catalog.aclose()


app = FastAPI(lifespan=lifespan)

REQUEST_COUNT = Counter(
    "city_explorer_http_requests_total",
    "HTTP requests served by the city explorer",
    ["method", "route", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "city_explorer_http_request_seconds",
    "Time spent serving a request, including any catalog round trips",
    ["route"],
)


def _route_template(request: Request) -> str:
    # matched route pattern keeps the label set bounded
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def get_store(request: Request) -> CityViewStore:
    """Return the store created by the lifespan handler."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise CityExplorerError("City store is not initialised")
    return store


def get_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or load_settings()


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag store and catalog logs with a request ID, then record the request.

    Store actions triggered by an intent log under the same ``request_id``
    as the HTTP line, so a superseded query can be traced to its caller.
    """
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    bind_contextvars(request_id=request_id, http_path=request.url.path)
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["x-request-id"] = request_id
        return response
    finally:
        elapsed_s = time.perf_counter() - started
        route = _route_template(request)
        logger.info(
            "HTTP_REQUEST",
            method=request.method,
            route=route,
            status_code=status_code,
            elapsed_ms=round(elapsed_s * 1000, 2),
        )
        REQUEST_COUNT.labels(
            method=request.method, route=route, status_code=status_code
        ).inc()
        REQUEST_LATENCY.labels(route=route).observe(elapsed_s)
        clear_contextvars()


@app.exception_handler(InvalidFilterState)
async def invalid_filter_handler(request: Request, exc: InvalidFilterState):
    """Reject filter combinations the store refuses with a 422."""
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.exception_handler(CityExplorerError)
async def city_explorer_error_handler(request: Request, exc: CityExplorerError):
    logger.error("UNEXPECTED_ERROR", error=str(exc))
    return JSONResponse(status_code=500, content={"detail": "Unexpected error"})


@app.get("/")
async def root():
    """Return a basic liveness response."""
    return {"message": "City explorer is running"}


@app.get("/view", response_model=ViewState)
async def get_view(store: CityViewStore = Depends(get_store)) -> ViewState:
    """Return the current list view."""
    return store.view


@app.post("/intents", response_model=ViewState)
async def post_intent(
    payload: dict = Body(...), store: CityViewStore = Depends(get_store)
) -> ViewState:
    """Dispatch one user intent to the store and return the resulting view.

    Args:
        payload: Intent body, tagged by its ``kind`` field.

    Returns:
        The ViewState after the intent was applied. Search intents return
        immediately; their query is issued once typing settles.
    """
    try:
        intent = intent_adapter.validate_python(payload)
    except ValidationError as exc:
        raise RequestValidationError(
            exc.errors(include_url=False, include_context=False)
        ) from exc
    await store.dispatch(intent)
    return store.view


@app.get("/selection", response_model=SelectionView)
async def get_selection(store: CityViewStore = Depends(get_store)) -> SelectionView:
    if store.selection is None:
        raise HTTPException(status_code=404, detail="No city selected")
    return store.selection


@app.get("/countries")
async def get_countries():
    """List the countries the filter offers, with their codes."""
    return [{"name": name, "code": COUNTRY_TO_CODE[name]} for name in COUNTRIES]


@app.get("/health", response_model=HealthResponse)
async def health(settings: Settings = Depends(get_settings)) -> HealthResponse:
    """Report API health and dependency availability.

    Returns:
        A HealthResponse containing dependency status.
    """
    catalog_available = await is_catalog_api_available(settings)
    return HealthResponse(
        status="ok",
        dependencies=Dependencies(
            catalog_api=ServiceStatus.available
            if catalog_available
            else ServiceStatus.not_available,
            redis=is_redis_available(),
        ),
    )


@app.get("/metrics")
async def metrics():
    """Expose Prometheus metrics for scraping."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
