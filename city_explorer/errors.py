"""Exceptions raised by the city explorer core."""


class CityExplorerError(Exception):
    """Base exception for city explorer failures."""
    pass


class ConfigurationError(CityExplorerError):
    """Raised when required configuration, such as the API key, is missing."""
    pass


class InvalidFilterState(CityExplorerError):
    """Raised when a filter action would leave the query state inconsistent."""
    pass
