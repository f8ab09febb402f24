"""Request issuer - sends weather requests to the oracle and records them."""
import logging
from typing import Callable, Optional

from correlation_store import CorrelationStore
from oracle_provider import InsufficientBudget, OracleChannelBase, OracleRequest
from weather_data import ENDPOINT_LOCATION_CURRENT_CONDITIONS, PendingRequest


class FundingLedger:
    """Balance that pays oracle fees, in the oracle's smallest fee unit."""

    def __init__(self, balance: int = 0):
        if balance < 0:
            raise ValueError("Opening balance cannot be negative")
        self._balance = balance

    @property
    def balance(self) -> int:
        return self._balance

    def can_cover(self, amount: int) -> bool:
        return 0 <= amount <= self._balance

    def deposit(self, amount: int) -> int:
        if amount <= 0:
            raise ValueError("Deposit must be positive")
        self._balance += amount
        return self._balance

    def debit(self, amount: int) -> int:
        if not self.can_cover(amount):
            raise InsufficientBudget(f"Balance {self._balance} cannot cover {amount}")
        self._balance -= amount
        return self._balance

    def withdraw(self, amount: int) -> int:
        if amount <= 0:
            raise ValueError("Withdrawal must be positive")
        return self.debit(amount)


class RequestIssuer:
    """
    Issues location + current-conditions requests to an oracle channel.

    The request is registered in the correlation store before issue()
    returns, so a fulfillment can never arrive for an unknown id. Nothing
    waits on the answer.
    """

    def __init__(
        self,
        channel: OracleChannelBase,
        store: CorrelationStore,
        ledger: FundingLedger,
        clock: Callable[[], float],
        fee: int = 0,
    ):
        """
        Initialize request issuer.

        Args:
            channel: Oracle channel requests are submitted to
            store: Correlation store that records issued requests
            ledger: Funds the per-request budget is drawn from
            clock: Returns the current UNIX time
            fee: Fee the oracle lists for one request
        """
        self.channel = channel
        self.store = store
        self.ledger = ledger
        self.clock = clock
        self.fee = fee

    def check_budget(self, budget: int) -> None:
        """Raise InsufficientBudget unless a request with this budget could be issued now."""
        if budget < self.fee:
            raise InsufficientBudget(f"Budget {budget} does not cover oracle fee {self.fee}")
        if not self.ledger.can_cover(budget):
            raise InsufficientBudget(f"Balance {self.ledger.balance} cannot cover budget {budget}")

    def issue(
        self,
        location: str,
        lat: str,
        lon: str,
        units: str,
        budget: int,
        token_id: Optional[int] = None,
    ) -> str:
        """
        Issue a weather request for a location.

        Args:
            location: Location name the request is for
            lat: Latitude, string encoded
            lon: Longitude, string encoded
            units: "metric" or "imperial"
            budget: Fee attached to this request
            token_id: Token the answer belongs to, if any

        Returns:
            str: Opaque request id

        Raises:
            InsufficientBudget: If budget is below the oracle fee or the
                ledger cannot pay it; nothing is recorded
        """
        self.check_budget(budget)
        request_id = self.channel.submit(OracleRequest(latitude=lat, longitude=lon, units=units, budget=budget))
        self.ledger.debit(budget)
        self.store.register(
            PendingRequest(
                request_id=request_id,
                location_key=location,
                endpoint=ENDPOINT_LOCATION_CURRENT_CONDITIONS,
                latitude=lat,
                longitude=lon,
                units=units,
                issued_at=self.clock(),
                budget=budget,
            ),
            token_id=token_id,
        )
        logging.info(f"Issued request {request_id[:12]} for {location} (token={token_id}, budget={budget})")
        return request_id
