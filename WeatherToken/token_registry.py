"""Minimal collectible registry: token ids, owners and the supply cap."""
import logging
from typing import Dict, Hashable, List, Optional

from lifecycle import LifecycleGate
from oracle_provider import SupplyExhausted, TokenNotFound, Unauthorized


class TokenRegistry:
    """Issues sequential token ids starting at 0 and tracks ownership."""

    def __init__(self, gate: LifecycleGate, max_supply: Optional[int] = None):
        self.gate = gate
        self.max_supply = max_supply
        self._owners: Dict[int, Hashable] = {}

    @property
    def total_supply(self) -> int:
        return len(self._owners)

    def exists(self, token_id: int) -> bool:
        return token_id in self._owners

    def owner_of(self, token_id: int) -> Hashable:
        try:
            return self._owners[token_id]
        except KeyError:
            raise TokenNotFound(f"Token {token_id} does not exist") from None

    def tokens_of(self, owner: Hashable) -> List[int]:
        return [tid for tid, held_by in self._owners.items() if held_by == owner]

    def set_max_supply(self, max_supply: Optional[int]) -> None:
        if max_supply is not None and max_supply < self.total_supply:
            raise ValueError(f"Max supply {max_supply} is below current supply {self.total_supply}")
        self.max_supply = max_supply

    def require_capacity(self) -> None:
        if self.max_supply is not None and self.total_supply >= self.max_supply:
            raise SupplyExhausted(f"Max supply of {self.max_supply} reached")

    def register(self, owner: Hashable) -> int:
        """Allocate the next token id for owner."""
        self.require_capacity()
        token_id = self.total_supply
        self._owners[token_id] = owner
        return token_id

    def unregister(self, token_id: int) -> None:
        """Drop the most recently allocated id when its mint could not complete."""
        if token_id != self.total_supply - 1:
            raise ValueError(f"Only the newest token can be unregistered, not {token_id}")
        del self._owners[token_id]

    def transfer(self, sender: Hashable, recipient: Hashable, token_id: int) -> None:
        """
        Move a token between owners. Blocked while the system is paused.

        Fee splitting on sales is handled outside the engine.
        """
        self.gate.require_unpaused("transfer")
        if self.owner_of(token_id) != sender:
            raise Unauthorized(f"{sender} does not own token {token_id}")
        self._owners[token_id] = recipient
        logging.info(f"Token {token_id} transferred from {sender} to {recipient}")
