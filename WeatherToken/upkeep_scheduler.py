"""Staleness scanner and batch scheduler behind the upkeep trigger boundary."""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Hashable, List, Tuple

from engine_config import EngineConfig
from lifecycle import AccessControl, LifecycleGate, Role
from oracle_provider import OracleEngineError
from payload_codec import decode_token_ids, encode_token_ids
from request_issuer import RequestIssuer
from token_materializer import MaterializationMode, TokenMaterializer
from weather_data import TokenRecord


@dataclass
class BatchResult:
    """Outcome of one perform_upkeep() call."""
    refreshed: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    failed: Dict[int, OracleEngineError] = field(default_factory=dict)
    request_ids: Dict[int, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class UpkeepScheduler:
    """
    Decides which tokens are stale and refreshes them in batches.

    An external scheduling principal polls check_upkeep() and, when work
    is due, hands the payload back to perform_upkeep(). Each token in the
    batch commits on its own, so one failure does not undo the others.
    """

    def __init__(
        self,
        tokens: Dict[int, TokenRecord],
        config: EngineConfig,
        issuer: RequestIssuer,
        materializer: TokenMaterializer,
        gate: LifecycleGate,
        access: AccessControl,
        clock: Callable[[], float],
    ):
        self.tokens = tokens
        self.config = config
        self.issuer = issuer
        self.materializer = materializer
        self.gate = gate
        self.access = access
        self.clock = clock

    def scan(self) -> List[int]:
        """Token ids that are active and past their cooldown, in id order."""
        now = self.clock()
        return [
            token_id for token_id, record in sorted(self.tokens.items())
            if record.target.is_due(now, self.config.cooldown_seconds)
        ]

    def check_upkeep(self) -> Tuple[bool, bytes]:
        """
        Report whether any token needs a refresh.

        Returns:
            Tuple of (needed, encoded token id list)

        Raises:
            SystemPaused: While the system is paused
        """
        self.gate.require_unpaused("upkeep check")
        due = self.scan()
        logging.debug(f"Upkeep check: {len(due)} token(s) due")
        return bool(due), encode_token_ids(due)

    def perform_upkeep(self, caller: Hashable, payload: bytes) -> BatchResult:
        """
        Refresh every token listed in payload that is still due.

        Args:
            caller: Principal submitting the batch; must hold SCHEDULER
            payload: Token id list from check_upkeep()

        Returns:
            BatchResult: Which tokens were refreshed, skipped and failed

        Raises:
            Unauthorized: If caller is not the scheduling principal
            SystemPaused: While the system is paused
            PayloadDecodeError: If payload is malformed
        """
        self.access.require(caller, Role.SCHEDULER)
        self.gate.require_unpaused("upkeep")
        token_ids = decode_token_ids(payload)

        result = BatchResult()
        for token_id in token_ids:
            record = self.tokens.get(token_id)
            now = self.clock()
            if record is None or not record.target.is_due(now, self.config.cooldown_seconds):
                result.skipped.append(token_id)
                continue
            try:
                result.request_ids[token_id] = self.refresh(record)
            except OracleEngineError as e:
                logging.warning(f"Upkeep failed for token {token_id}: {e}")
                result.failed[token_id] = e
                continue
            record.target.last_update = self.clock()
            result.refreshed.append(token_id)

        logging.info(
            f"Upkeep batch: {len(result.refreshed)} refreshed, "
            f"{len(result.skipped)} skipped, {len(result.failed)} failed"
        )
        return result

    def refresh(self, record: TokenRecord) -> str:
        """Issue a new request for a token and materialize it."""
        target = record.target
        request_id = self.issuer.issue(
            target.location_name,
            target.latitude,
            target.longitude,
            self.config.units,
            self.config.oracle_fee,
            token_id=record.token_id,
        )
        if record.awaiting_request is not None:
            logging.warning(
                f"Token {record.token_id}: request {record.awaiting_request[:12]} never answered, "
                f"superseded by {request_id[:12]}"
            )
        record.awaiting_request = request_id
        # Correlated tokens are materialized when their answer arrives
        if self.materializer.mode is MaterializationMode.LEGACY_LOG_TAIL:
            self.materializer.materialize(target.location_name, record.token_id)
        return request_id
