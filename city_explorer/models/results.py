"""Typed outcome of one logical catalog fetch."""

from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict


class ErrorKind(str, Enum):
    """Reason a logical fetch failed after the executor gave up."""

    rate_limited = "rate_limited"
    network_error = "network_error"
    remote_error = "remote_error"


class Success(BaseModel):
    """Parsed items plus the total count the catalog reported."""

    model_config = ConfigDict(frozen=True)

    ok: Literal[True] = True
    data: list[Any]
    total_count: int = 0


class Failure(BaseModel):
    """Failed fetch; carries the remote message when one was available."""

    model_config = ConfigDict(frozen=True)

    ok: Literal[False] = False
    error_kind: ErrorKind
    message: str
    status_code: int | None = None


FetchResult = Union[Success, Failure]
