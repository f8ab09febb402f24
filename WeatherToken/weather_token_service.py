"""Weather token service - wires the oracle engine together behind one facade."""
import logging
import time
from typing import Callable, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple, Union

from correlation_store import CorrelationStore
from engine_config import VALID_UNITS, EngineConfig
from fulfillment_handler import FulfillmentHandler
from lifecycle import AccessControl, LifecycleGate, Role
from oracle_provider import OracleChannelBase, OracleEngineError, SystemPaused, TokenNotFound
from request_issuer import FundingLedger, RequestIssuer
from token_materializer import MaterializationMode, TokenMaterializer
from token_metadata import render_document
from token_registry import TokenRegistry
from upkeep_scheduler import BatchResult, UpkeepScheduler
from weather_data import (
    FulfilledObservation,
    ImageBucket,
    PendingRequest,
    RefreshTarget,
    TokenRecord,
    WeatherSnapshot,
)

ImageSet = Union[Mapping[ImageBucket, str], Sequence[str]]


class WeatherTokenService:
    """
    Mints weather tokens and keeps their snapshots in step with the oracle.

    Every call runs to completion before the next one starts; the oracle
    answers arrive later as separate on_fulfillment() calls in whatever
    order the oracle delivers them.
    """

    def __init__(
        self,
        owner: Hashable,
        channel: OracleChannelBase,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], float] = time.time,
        funding: int = 0,
    ):
        """
        Initialize weather token service.

        Args:
            owner: Principal holding the owner role
            channel: Oracle channel requests are sent through
            config: Engine configuration (defaults to EngineConfig())
            clock: Returns the current UNIX time
            funding: Opening balance used to pay oracle fees
        """
        self.config = config or EngineConfig()
        self.clock = clock
        self.channel = channel

        self.tokens: Dict[int, TokenRecord] = {}
        self.store = CorrelationStore()
        self.ledger = FundingLedger(funding)
        self.access = AccessControl(owner)
        self.gate = LifecycleGate()
        self.registry = TokenRegistry(self.gate, self.config.max_supply)
        self.issuer = RequestIssuer(channel, self.store, self.ledger, clock, fee=self.config.oracle_fee)
        self.handler = FulfillmentHandler(self.store, clock)
        self.materializer = TokenMaterializer(self.store, self.tokens, self.config.mode)
        self.scheduler = UpkeepScheduler(
            self.tokens, self.config, self.issuer, self.materializer, self.gate, self.access, clock
        )

    # -- minting ------------------------------------------------------------

    def mint(
        self,
        caller: Hashable,
        owner: Hashable,
        location: str,
        lat: str,
        lon: str,
        images: ImageSet,
    ) -> int:
        """
        Mint a token for a location and request its first observation.

        Args:
            caller: Principal minting; must hold MINTER
            owner: Principal that will own the token
            location: Location name displayed on the token
            lat: Latitude, string encoded
            lon: Longitude, string encoded
            images: Four image references, keyed by ImageBucket or in
                clear/rain/snow/wintry order

        Returns:
            int: New token id

        Raises:
            Unauthorized, SystemPaused, SupplyExhausted, InsufficientBudget,
            OracleProviderError (the token is not kept)
        """
        self.access.require(caller, Role.MINTER)
        self.gate.require_minting()
        image_map = _normalize_images(images)
        self.registry.require_capacity()
        self.issuer.check_budget(self.config.oracle_fee)

        token_id = self.registry.register(owner)
        now = self.clock()
        record = TokenRecord(
            token_id=token_id,
            target=RefreshTarget(
                location_name=location,
                latitude=str(lat),
                longitude=str(lon),
                images=image_map,
                last_update=now,
            ),
            snapshot=WeatherSnapshot.blank(location),
        )
        self.tokens[token_id] = record

        try:
            request_id = self.issuer.issue(
                location, record.target.latitude, record.target.longitude,
                self.config.units, self.config.oracle_fee, token_id=token_id,
            )
        except OracleEngineError:
            del self.tokens[token_id]
            self.registry.unregister(token_id)
            raise
        record.awaiting_request = request_id
        if self.materializer.mode is MaterializationMode.LEGACY_LOG_TAIL:
            self.materializer.materialize(location, token_id)

        logging.info(f"Minted token {token_id} for {location} ({lat}, {lon}) to {owner}")
        return token_id

    def request_refresh(self, caller: Hashable, token_id: int) -> str:
        """
        Reissue a request for one token outside the upkeep cadence.

        This is how an operator unsticks a token whose request was never
        answered. The cooldown is ignored and last_update is left alone.
        """
        self.access.require(caller, Role.REFRESH_ADMIN)
        self.gate.require_unpaused("refresh")
        record = self._record(token_id)
        if not record.target.active:
            raise SystemPaused(f"Token {token_id} is deactivated")
        return self.scheduler.refresh(record)

    # -- oracle boundary ----------------------------------------------------

    def issue(self, caller: Hashable, location: str, lat: str, lon: str, units: str, budget: int) -> str:
        """Issue a request not tied to any token, paid from the shared ledger."""
        self.access.require(caller, Role.REFRESH_ADMIN)
        return self.issuer.issue(location, lat, lon, units, budget)

    def _fulfill(
        self,
        request_id: str,
        found: bool,
        location_payload: bytes,
        conditions_payload: bytes,
    ) -> Optional[FulfilledObservation]:
        """Record an oracle answer and apply it to the token awaiting it."""
        observation = self.handler.fulfill(request_id, found, location_payload, conditions_payload)
        self.materializer.on_answered(request_id, observation)
        if self.config.retention_seconds is not None:
            self.sweep()
        return observation

    def on_fulfillment(
        self,
        caller: Hashable,
        request_id: str,
        found: bool,
        location_payload: bytes,
        conditions_payload: bytes,
    ) -> Optional[FulfilledObservation]:
        """Callback entry point for the oracle principal."""
        self.access.require(caller, Role.ORACLE)
        return self._fulfill(request_id, found, location_payload, conditions_payload)

    def materialize(self, location: str, token_id: int, request_id: Optional[str] = None) -> WeatherSnapshot:
        return self.materializer.materialize(location, token_id, request_id)

    # -- upkeep boundary ----------------------------------------------------

    def scan(self) -> List[int]:
        return self.scheduler.scan()

    def check_upkeep(self) -> Tuple[bool, bytes]:
        return self.scheduler.check_upkeep()

    def perform_upkeep(self, caller: Hashable, payload: bytes) -> BatchResult:
        return self.scheduler.perform_upkeep(caller, payload)

    # -- admin surface ------------------------------------------------------

    def set_cooldown(self, caller: Hashable, seconds: int) -> None:
        self.access.require(caller, Role.REFRESH_ADMIN)
        if seconds < 0:
            raise ValueError("Cooldown cannot be negative")
        self.config.cooldown_seconds = seconds
        logging.info(f"Cooldown set to {seconds}s")

    def set_scheduler(self, caller: Hashable, principal: Hashable) -> None:
        self.access.require(caller, Role.OWNER)
        self.access.grant(principal, Role.SCHEDULER)

    def set_oracle(self, caller: Hashable, principal: Hashable) -> None:
        self.access.require(caller, Role.OWNER)
        self.access.grant(principal, Role.ORACLE)

    def grant_role(self, caller: Hashable, principal: Hashable, role: Role) -> None:
        self.access.require(caller, Role.OWNER)
        self.access.grant(principal, role)

    def set_oracle_fee(self, caller: Hashable, fee: int) -> None:
        self.access.require(caller, Role.FEE_ADMIN)
        if fee < 0:
            raise ValueError("Oracle fee cannot be negative")
        self.config.oracle_fee = fee
        self.issuer.fee = fee
        logging.info(f"Oracle fee set to {fee}")

    def set_units(self, caller: Hashable, units: str) -> None:
        self.access.require(caller, Role.FEE_ADMIN)
        if units not in VALID_UNITS:
            raise ValueError(f"units must be one of {VALID_UNITS}, got {units!r}")
        self.config.units = units

    def fund(self, caller: Hashable, amount: int) -> int:
        self.access.require(caller, Role.FEE_ADMIN)
        balance = self.ledger.deposit(amount)
        logging.info(f"Funded {amount}, balance {balance}")
        return balance

    def withdraw_funds(self, caller: Hashable, amount: int) -> int:
        self.access.require(caller, Role.OWNER)
        return self.ledger.withdraw(amount)

    def pause(self, caller: Hashable) -> None:
        self.access.require(caller, Role.OWNER)
        self.gate.pause()

    def unpause(self, caller: Hashable) -> None:
        self.access.require(caller, Role.OWNER)
        self.gate.unpause()

    def set_minting_enabled(self, caller: Hashable, enabled: bool) -> None:
        self.access.require(caller, Role.OWNER)
        self.gate.minting_enabled = enabled

    def activate(self, caller: Hashable, token_id: int) -> bool:
        self.access.require(caller, Role.REFRESH_ADMIN)
        return self.gate.set_active(self._record(token_id).target, token_id, True)

    def deactivate(self, caller: Hashable, token_id: int) -> bool:
        self.access.require(caller, Role.REFRESH_ADMIN)
        return self.gate.set_active(self._record(token_id).target, token_id, False)

    def set_max_supply(self, caller: Hashable, max_supply: Optional[int]) -> None:
        self.access.require(caller, Role.OWNER)
        self.registry.set_max_supply(max_supply)
        self.config.max_supply = max_supply

    def transfer(self, sender: Hashable, recipient: Hashable, token_id: int) -> None:
        self.registry.transfer(sender, recipient, token_id)

    # -- queries ------------------------------------------------------------

    def snapshot(self, token_id: int) -> WeatherSnapshot:
        return self._record(token_id).snapshot

    def target(self, token_id: int) -> RefreshTarget:
        return self._record(token_id).target

    def token_uri(self, token_id: int) -> str:
        """Attribute document for a token as a base64 JSON data URI."""
        record = self._record(token_id)
        return render_document(
            token_id, record.snapshot, record.target, self.config.collection_name, self.config.symbol
        )

    def unfulfilled_requests(self) -> List[PendingRequest]:
        return self.store.unfulfilled()

    def oldest_unfulfilled_age(self) -> Optional[float]:
        """Seconds the oldest unanswered request has been waiting, or None."""
        return self.store.oldest_unfulfilled_age(self.clock())

    def stalled_tokens(self, max_age: float) -> List[int]:
        """Tokens whose awaited request has gone unanswered for more than max_age seconds."""
        now = self.clock()
        stalled = []
        for token_id, record in sorted(self.tokens.items()):
            if record.awaiting_request is None:
                continue
            issued_at = self.store.get_request(record.awaiting_request).issued_at
            if now - issued_at > max_age:
                stalled.append(token_id)
        return stalled

    def sweep(self) -> int:
        """Evict old answered requests per the configured retention window."""
        if self.config.retention_seconds is None:
            return 0
        awaited = {r.awaiting_request for r in self.tokens.values() if r.awaiting_request}
        return self.store.sweep(self.clock(), self.config.retention_seconds, protected=awaited)

    def _record(self, token_id: int) -> TokenRecord:
        try:
            return self.tokens[token_id]
        except KeyError:
            raise TokenNotFound(f"Token {token_id} does not exist") from None


def _normalize_images(images: ImageSet) -> Dict[ImageBucket, str]:
    if isinstance(images, Mapping):
        image_map = {ImageBucket(k): v for k, v in images.items()}
    else:
        image_map = dict(zip(ImageBucket, images))
        if len(images) != len(ImageBucket):
            raise ValueError(f"Expected {len(ImageBucket)} images, got {len(images)}")
    missing = [b.value for b in ImageBucket if not image_map.get(b)]
    if missing:
        raise ValueError(f"Missing images for: {', '.join(missing)}")
    return image_map
