"""Token materializer - turns fulfilled observations into token snapshots."""
import logging
from enum import Enum
from typing import Dict, Optional

from correlation_store import CorrelationStore
from oracle_provider import ObservationNotReady, TokenNotFound, UnknownRequest
from weather_data import FulfilledObservation, TokenRecord, WeatherSnapshot


class MaterializationMode(str, Enum):
    """Where a token's new snapshot comes from."""
    # Newest observation system-wide; overlapping requests can cross tokens
    LEGACY_LOG_TAIL = "legacy"
    # The observation answering the request issued for that token
    CORRELATED = "correlated"


class TokenMaterializer:
    """
    Writes WeatherSnapshots onto token records.

    In LEGACY_LOG_TAIL mode materialize() reads the tail of the global
    fulfillment log. That is only correct while exactly one request is in
    flight: if token B's request is fulfilled before token A is
    materialized, A receives B's weather.

    In CORRELATED mode every request is bound to its token at issuance
    and a token only ever receives the observation for the request it is
    awaiting. Answers to superseded requests are stored but not applied.
    """

    def __init__(
        self,
        store: CorrelationStore,
        tokens: Dict[int, TokenRecord],
        mode: MaterializationMode = MaterializationMode.CORRELATED,
    ):
        self.store = store
        self.tokens = tokens
        self.mode = MaterializationMode(mode)

    def materialize(self, location: str, token_id: int, request_id: Optional[str] = None) -> WeatherSnapshot:
        """
        Build and write a token's snapshot.

        Args:
            location: Location name shown on the token
            token_id: Token to write
            request_id: Correlated mode only; defaults to the request the
                token is awaiting

        Returns:
            WeatherSnapshot: The snapshot now displayed by the token

        Raises:
            TokenNotFound: If the token does not exist
            ObservationNotReady: Correlated mode, when the request has no
                observation yet
            UnknownRequest: Correlated mode, when the request was issued
                for another token or for none
        """
        record = self._record(token_id)

        if self.mode is MaterializationMode.LEGACY_LOG_TAIL:
            observation = self.store.latest_observation()
            if observation is None:
                snapshot = WeatherSnapshot.blank(location)
                logging.info(f"Token {token_id}: fulfillment log empty, writing blank snapshot")
            else:
                snapshot = WeatherSnapshot.from_conditions(location, observation.conditions)
                record.remember(observation.request_id)
                owner = self.store.token_for(observation.request_id)
                if owner is not None and owner != token_id:
                    logging.warning(
                        f"Token {token_id} materialized from request {observation.request_id[:12]} "
                        f"issued for token {owner}"
                    )
            record.snapshot = snapshot
            return snapshot

        request_id = request_id or record.awaiting_request
        if request_id and self.store.token_for(request_id) != token_id:
            raise UnknownRequest(f"Request {request_id[:12]} was not issued for token {token_id}")
        observation = self.store.observation(request_id) if request_id else None
        if observation is None:
            raise ObservationNotReady(f"Token {token_id}: no observation for request {request_id}")
        return self._apply(record, location, observation)

    def on_answered(self, request_id: str, observation: Optional[FulfilledObservation]) -> Optional[int]:
        """
        React to a fulfillment callback.

        Clears the token's awaited request in both modes. In correlated
        mode a found observation is applied when it answers the request
        the token is still awaiting.

        Returns:
            int: Token id whose snapshot was rewritten, or None
        """
        token_id = self.store.token_for(request_id)
        record = self.tokens.get(token_id) if token_id is not None else None
        if record is None:
            return None
        if record.awaiting_request != request_id:
            logging.info(f"Request {request_id[:12]} superseded for token {token_id}, not applied")
            return None

        record.awaiting_request = None
        if observation is None or self.mode is not MaterializationMode.CORRELATED:
            return None
        self._apply(record, record.target.location_name, observation)
        return token_id

    def _apply(self, record: TokenRecord, location: str, observation: FulfilledObservation) -> WeatherSnapshot:
        snapshot = WeatherSnapshot.from_conditions(location, observation.conditions)
        record.snapshot = snapshot
        record.remember(observation.request_id)
        logging.info(
            f"Token {record.token_id} materialized from {observation.request_id[:12]}: "
            f"{snapshot.precipitation_type.name}, temp={snapshot.temperature}"
        )
        return snapshot

    def _record(self, token_id: int) -> TokenRecord:
        try:
            return self.tokens[token_id]
        except KeyError:
            raise TokenNotFound(f"Token {token_id} does not exist") from None
