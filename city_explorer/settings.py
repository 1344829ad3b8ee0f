"""Environment-driven settings for the catalog client and the store."""

import os

from pydantic import BaseModel

from city_explorer.errors import ConfigurationError

DEFAULT_API_HOST = "wft-geo-db.p.rapidapi.com"


class Settings(BaseModel):
    """Runtime configuration, read once at application start."""

    api_key: str | None = None
    api_host: str = DEFAULT_API_HOST
    base_url: str = f"https://{DEFAULT_API_HOST}/v1/geo"
    pacing_delay_s: float = 1.0
    retry_attempts: int = 3
    retry_base_delay_s: float = 1.0
    retry_max_delay_s: float = 8.0
    timeout_s: float = 10.0
    page_size: int = 10
    region_result_limit: int = 20
    search_debounce_s: float = 0.3

    def require_api_key(self) -> str:
        """Return the API key or fail before any network call is made.

        Raises:
            ConfigurationError: If no key was configured.
        """
        if not self.api_key:
            raise ConfigurationError(
                "GeoDB API key is not configured. Set GEODB_API_KEY."
            )
        return self.api_key


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from exc


def load_settings() -> Settings:
    """Build Settings from the process environment.

    Returns:
        A populated Settings model.

    Raises:
        ConfigurationError: If a numeric variable cannot be parsed.
    """
    host = os.getenv("GEODB_API_HOST", DEFAULT_API_HOST)
    return Settings(
        api_key=os.getenv("GEODB_API_KEY") or None,
        api_host=host,
        base_url=os.getenv("GEODB_BASE_URL", f"https://{host}/v1/geo"),
        pacing_delay_s=_env_number("GEODB_PACING_DELAY_S", 1.0, float),
        retry_attempts=_env_number("GEODB_RETRY_ATTEMPTS", 3, int),
        retry_base_delay_s=_env_number("GEODB_RETRY_BASE_DELAY_S", 1.0, float),
        retry_max_delay_s=_env_number("GEODB_RETRY_MAX_DELAY_S", 8.0, float),
        timeout_s=_env_number("GEODB_TIMEOUT_S", 10.0, float),
        page_size=_env_number("PAGE_SIZE", 10, int),
        region_result_limit=_env_number("REGION_RESULT_LIMIT", 20, int),
        search_debounce_s=_env_number("SEARCH_DEBOUNCE_S", 0.3, float),
    )
