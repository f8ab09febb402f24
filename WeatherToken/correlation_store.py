"""Correlation store - maps oracle request ids to what was asked and what came back."""
import logging
from typing import Dict, List, Optional, Set

from oracle_provider import DuplicateFulfillment, UnknownRequest
from weather_data import FulfilledObservation, PendingRequest


class CorrelationStore:
    """
    In-memory record of every oracle request this system has issued.

    Holds three things: the parameters of each issued request, the
    decoded observation of each successful fulfillment, and the ordered
    log of fulfilled request ids. It also remembers which token each
    request was issued for.

    Nothing is removed unless sweep() is called, so without a retention
    window the store grows for the lifetime of the process.
    """

    def __init__(self):
        self._pending: Dict[str, PendingRequest] = {}
        self._observations: Dict[str, FulfilledObservation] = {}
        self._acknowledged: Dict[str, float] = {}  # request id -> callback time
        self._token_for_request: Dict[str, int] = {}
        self._log: List[str] = []
        self.evicted_count = 0

    # -- issuance -----------------------------------------------------------

    def register(self, request: PendingRequest, token_id: Optional[int] = None) -> None:
        """Record an issued request before any response can arrive."""
        if request.request_id in self._pending:
            raise ValueError(f"Request id {request.request_id} already registered")
        self._pending[request.request_id] = request
        if token_id is not None:
            self._token_for_request[request.request_id] = token_id

    def get_request(self, request_id: str) -> PendingRequest:
        try:
            return self._pending[request_id]
        except KeyError:
            raise UnknownRequest(f"Request {request_id} was not issued by this system") from None

    def is_issued(self, request_id: str) -> bool:
        return request_id in self._pending

    def token_for(self, request_id: str) -> Optional[int]:
        return self._token_for_request.get(request_id)

    # -- fulfillment --------------------------------------------------------

    def acknowledge(self, request_id: str, now: float) -> None:
        """
        Mark a request as answered.

        Raises:
            UnknownRequest: If the id was never issued
            DuplicateFulfillment: If the id was already answered
        """
        if request_id not in self._pending:
            raise UnknownRequest(f"Request {request_id} was not issued by this system")
        if request_id in self._acknowledged:
            raise DuplicateFulfillment(f"Request {request_id} was already fulfilled")
        self._acknowledged[request_id] = now

    def store_observation(self, observation: FulfilledObservation) -> None:
        """Store decoded payloads and append the id to the fulfillment log."""
        self._observations[observation.request_id] = observation
        self._log.append(observation.request_id)

    def is_acknowledged(self, request_id: str) -> bool:
        return request_id in self._acknowledged

    def observation(self, request_id: str) -> Optional[FulfilledObservation]:
        return self._observations.get(request_id)

    def latest_observation(self) -> Optional[FulfilledObservation]:
        """Observation at the tail of the fulfillment log, if any."""
        if not self._log:
            return None
        return self._observations[self._log[-1]]

    @property
    def fulfillment_log(self) -> List[str]:
        return list(self._log)

    # -- liveness -----------------------------------------------------------

    def unfulfilled(self) -> List[PendingRequest]:
        """Issued requests that have had no callback, oldest first."""
        outstanding = [r for rid, r in self._pending.items() if rid not in self._acknowledged]
        return sorted(outstanding, key=lambda r: r.issued_at)

    def oldest_unfulfilled_age(self, now: float) -> Optional[float]:
        outstanding = self.unfulfilled()
        if not outstanding:
            return None
        return now - outstanding[0].issued_at

    # -- retention ----------------------------------------------------------

    def sweep(self, now: float, retention_seconds: float, protected: Optional[Set[str]] = None) -> int:
        """
        Evict answered requests older than the retention window.

        Requests with no callback yet are kept, as are the log tail and
        any id in ``protected``.

        Returns:
            int: Number of requests evicted
        """
        keep = set(protected or ())
        if self._log:
            keep.add(self._log[-1])
        cutoff = now - retention_seconds
        expired = [
            rid for rid, answered_at in self._acknowledged.items()
            if answered_at <= cutoff and rid not in keep
        ]
        for rid in expired:
            self._pending.pop(rid, None)
            self._observations.pop(rid, None)
            self._acknowledged.pop(rid, None)
            self._token_for_request.pop(rid, None)
        if expired:
            dropped = set(expired)
            self._log = [rid for rid in self._log if rid not in dropped]
            self.evicted_count += len(expired)
            logging.info(f"Correlation sweep evicted {len(expired)} request(s), {len(self._pending)} retained")
        return len(expired)

    def __len__(self) -> int:
        return len(self._pending)
