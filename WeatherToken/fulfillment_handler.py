"""Fulfillment handler - matches oracle callbacks to the requests that caused them."""
import logging
from typing import Callable, Optional

from correlation_store import CorrelationStore
from oracle_provider import DuplicateFulfillment
from payload_codec import decode_conditions, decode_location
from weather_data import FulfilledObservation


class FulfillmentHandler:
    """Validates and records oracle fulfillments."""

    def __init__(self, store: CorrelationStore, clock: Callable[[], float]):
        self.store = store
        self.clock = clock

    def fulfill(
        self,
        request_id: str,
        found: bool,
        location_payload: bytes,
        conditions_payload: bytes,
    ) -> Optional[FulfilledObservation]:
        """
        Accept the oracle's answer to an issued request.

        Each request id is answered once. A not-found answer is
        acknowledged and changes nothing else.

        Returns:
            FulfilledObservation, or None when the oracle found no data

        Raises:
            UnknownRequest: If this system never issued the id
            DuplicateFulfillment: If the id was already answered
            PayloadDecodeError: If either payload is malformed
        """
        self.store.get_request(request_id)
        if self.store.is_acknowledged(request_id):
            logging.warning(f"Rejected replayed fulfillment for request {request_id[:12]}")
            raise DuplicateFulfillment(f"Request {request_id} was already fulfilled")

        if not found:
            self.store.acknowledge(request_id, self.clock())
            logging.warning(f"Oracle found no data for request {request_id[:12]}")
            return None

        # Decode before touching state so a bad payload leaves nothing behind
        location = decode_location(location_payload)
        conditions = decode_conditions(conditions_payload)

        now = self.clock()
        self.store.acknowledge(request_id, now)
        observation = FulfilledObservation(
            request_id=request_id,
            location=location,
            conditions=conditions,
            fulfilled_at=now,
        )
        self.store.store_observation(observation)
        logging.info(
            f"Fulfilled request {request_id[:12]}: {location.name} ({location.country_code}) "
            f"precip={conditions.precipitation_type.name} temp={conditions.temperature}"
        )
        logging.debug(f"Conditions for {request_id[:12]}: {conditions}")
        return observation
