"""Catalog HTTP client with pacing, retry and rate-limit backoff."""

import asyncio

import httpx
from prometheus_client import Counter

from city_explorer.geo_service.endpoints import Endpoint
from city_explorer.logging_config import logger
from city_explorer.models.results import ErrorKind, Failure, FetchResult, Success
from city_explorer.settings import Settings

CATALOG_REQUESTS = Counter(
    "catalog_requests_total",
    "Catalog request attempts by outcome",
    ["endpoint", "outcome"],
)

RATE_LIMITED_MESSAGE = "Rate limit exceeded. Please try again later."
NETWORK_ERROR_MESSAGE = "Could not reach the city catalog. Please try again."
BAD_PAYLOAD_MESSAGE = "The city catalog returned an unexpected response."


async def _pause(delay_s: float):
    if delay_s > 0:
        await asyncio.sleep(delay_s)


def _remote_message(response: httpx.Response) -> str:
    """Pull a human-readable message out of an error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        if body.get("message"):
            return str(body["message"])
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            if errors[0].get("message"):
                return str(errors[0]["message"])
    return f"City catalog request failed ({response.status_code} {response.reason_phrase})"


class CatalogClient:
    """Executes one logical catalog request and always returns a FetchResult."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        api_key = settings.require_api_key()
        self.settings = settings
        self.headers = {
            "X-RapidAPI-Key": api_key,
            "X-RapidAPI-Host": settings.api_host,
        }
        self._client = http_client or httpx.AsyncClient(timeout=settings.timeout_s)

    async def aclose(self):
        await self._client.aclose()

    async def execute(self, query, endpoint: Endpoint) -> FetchResult:
        """Fetch an endpoint, pacing every attempt and retrying transient failures.

        Args:
            query: Model with ``to_params()``, or None for endpoints without
                parameters.
            endpoint: Catalog endpoint to call.

        Returns:
            Success with the parsed items, or Failure with the error kind.
        """
        params = {}
        if query is not None:
            params = {
                key: value
                for key, value in query.to_params().items()
                if key not in endpoint.omitted_params
            }
        url = f"{self.settings.base_url}{endpoint.path}"
        attempts = max(1, self.settings.retry_attempts)
        base_delay = self.settings.retry_base_delay_s
        log_context = {"endpoint": endpoint.name, "path": endpoint.path}

        for attempt in range(1, attempts + 1):
            await _pause(self.settings.pacing_delay_s)
            try:
                response = await self._client.get(
                    url, params=params, headers=self.headers
                )
            except httpx.RequestError as exc:
                CATALOG_REQUESTS.labels(endpoint.name, ErrorKind.network_error.value).inc()
                logger.error(
                    "CATALOG_REQUEST_FAILED",
                    **log_context,
                    error=str(exc),
                    attempt=attempt,
                )
                if attempt == attempts:
                    return Failure(
                        error_kind=ErrorKind.network_error,
                        message=NETWORK_ERROR_MESSAGE,
                    )
                delay = base_delay
            else:
                logger.info(
                    "CATALOG_RESPONSE",
                    **log_context,
                    status=response.status_code,
                    attempt=attempt,
                )
                if response.status_code == 429:
                    CATALOG_REQUESTS.labels(endpoint.name, ErrorKind.rate_limited.value).inc()
                    if attempt == attempts:
                        logger.error("CATALOG_RATE_LIMITED", **log_context, attempts=attempt)
                        return Failure(
                            error_kind=ErrorKind.rate_limited,
                            message=RATE_LIMITED_MESSAGE,
                            status_code=429,
                        )
                    delay = base_delay * (2**attempt)
                elif response.is_success:
                    return self._parse(response, endpoint, log_context)
                else:
                    CATALOG_REQUESTS.labels(endpoint.name, ErrorKind.remote_error.value).inc()
                    logger.error(
                        "CATALOG_BAD_STATUS",
                        **log_context,
                        status=response.status_code,
                    )
                    return Failure(
                        error_kind=ErrorKind.remote_error,
                        message=_remote_message(response),
                        status_code=response.status_code,
                    )

            delay = min(delay, self.settings.retry_max_delay_s)
            logger.info(
                "CATALOG_RETRY",
                **log_context,
                attempt=attempt + 1,
                delay_s=delay,
            )
            await _pause(delay)

        # unreachable: the last attempt always returns
        return Failure(error_kind=ErrorKind.network_error, message=NETWORK_ERROR_MESSAGE)

    def _parse(self, response: httpx.Response, endpoint: Endpoint, log_context: dict) -> FetchResult:
        try:
            body = response.json()
            if endpoint.single:
                items = [endpoint.model.model_validate(body["data"])]
                total_count = 1
            else:
                items = [endpoint.model.model_validate(item) for item in body["data"]]
                metadata = body.get("metadata") or {}
                total_count = int(metadata.get("totalCount", len(items)))
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            CATALOG_REQUESTS.labels(endpoint.name, ErrorKind.remote_error.value).inc()
            logger.error("CATALOG_BAD_PAYLOAD", **log_context, error=str(exc))
            return Failure(
                error_kind=ErrorKind.remote_error,
                message=BAD_PAYLOAD_MESSAGE,
                status_code=response.status_code,
            )
        CATALOG_REQUESTS.labels(endpoint.name, "ok").inc()
        return Success(data=items, total_count=total_count)
