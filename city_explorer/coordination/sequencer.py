"""Latest-issued-wins guard for concurrent query streams."""

from collections import defaultdict
from dataclasses import dataclass

from city_explorer.logging_config import logger


@dataclass(frozen=True)
class Ticket:
    """Sequence number a fetch captured when it was issued."""

    stream: str
    number: int


class QuerySequencer:
    """Hands out monotonically increasing tickets per logical stream.

    A result may be applied only while its ticket is still the stream's
    latest; anything older was superseded and must be dropped.
    """

    def __init__(self):
        self._current = defaultdict(int)

    def issue(self, stream: str) -> Ticket:
        self._current[stream] += 1
        return Ticket(stream=stream, number=self._current[stream])

    def invalidate(self, stream: str):
        """Supersede whatever is in flight without issuing a new fetch."""
        self._current[stream] += 1

    def is_current(self, ticket: Ticket) -> bool:
        return self._current[ticket.stream] == ticket.number

    def accept(self, ticket: Ticket) -> bool:
        """Return True if the ticket is current, logging the drop otherwise."""
        if self.is_current(ticket):
            return True
        logger.info(
            "QUERY_SUPERSEDED",
            stream=ticket.stream,
            ticket=ticket.number,
            current=self._current[ticket.stream],
        )
        return False
