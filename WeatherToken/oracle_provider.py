"""Oracle channel abstraction - allows swapping the node that answers weather requests."""
import logging
import secrets
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple


class OracleEngineError(Exception):
    """Base class for every error raised by the weather token engine."""
    pass


class InsufficientBudget(OracleEngineError):
    """Raised when a request's budget does not cover the oracle fee or the funds on hand."""
    pass


class UnknownRequest(OracleEngineError):
    """Raised when a fulfillment names a request id this system never issued."""
    pass


class DuplicateFulfillment(OracleEngineError):
    """Raised when a request id is fulfilled a second time."""
    pass


class Unauthorized(OracleEngineError):
    """Raised when a caller lacks the role a gated operation requires."""
    pass


class SystemPaused(OracleEngineError):
    """Raised when the lifecycle gate blocks an operation."""
    pass


class TokenNotFound(OracleEngineError):
    pass


class SupplyExhausted(OracleEngineError):
    pass


class ObservationNotReady(OracleEngineError):
    """Raised when materializing from a request that has not been fulfilled yet."""
    pass


class PayloadDecodeError(OracleEngineError):
    pass


class PayloadEncodeError(OracleEngineError):
    pass


class OracleProviderError(OracleEngineError):
    """Exception raised when an oracle node fails to reach its data source."""
    pass


@dataclass(frozen=True)
class OracleRequest:
    """Outbound request: coordinates and units plus the fee attached to it."""
    latitude: str
    longitude: str
    units: str
    budget: int


# (request_id, found, location_payload, conditions_payload)
FulfillmentCallback = Callable[[str, bool, bytes, bytes], None]


class OracleChannelBase(ABC):
    """Abstract base class for oracle channels."""

    @abstractmethod
    def submit(self, request: OracleRequest) -> str:
        """
        Hand a request to the oracle without waiting for an answer.

        Args:
            request: Coordinates, units and fee budget

        Returns:
            str: Opaque request id issued by the oracle

        Raises:
            OracleProviderError: If the channel cannot accept the request
        """
        pass


class QueuedOracleChannel(OracleChannelBase):
    """
    Oracle channel that queues requests until a node services them.

    Request ids are random 32-byte hex tokens, so they cannot be guessed
    and do not repeat over the lifetime of the channel.
    """

    def __init__(self, id_factory: Optional[Callable[[], str]] = None):
        self._id_factory = id_factory or (lambda: secrets.token_hex(32))
        self._queue: "OrderedDict[str, OracleRequest]" = OrderedDict()

    def submit(self, request: OracleRequest) -> str:
        request_id = self._id_factory()
        while request_id in self._queue:
            request_id = self._id_factory()
        self._queue[request_id] = request
        logging.debug(f"Oracle request queued: {request_id[:12]} lat={request.latitude} lon={request.longitude}")
        return request_id

    def pending(self) -> List[Tuple[str, OracleRequest]]:
        """Queued requests, oldest first."""
        return list(self._queue.items())

    def take(self, request_id: str) -> OracleRequest:
        """Remove a request from the queue once it has been answered."""
        return self._queue.pop(request_id)

    def __len__(self) -> int:
        return len(self._queue)
