"""Lifecycle gate and role table for the weather token engine."""
import logging
from enum import Enum
from typing import Dict, Hashable, Optional, Set

from oracle_provider import SystemPaused, Unauthorized
from weather_data import RefreshTarget


class Role(str, Enum):
    OWNER = "owner"
    MINTER = "minter"
    REFRESH_ADMIN = "refresh-admin"
    FEE_ADMIN = "fee-admin"
    SCHEDULER = "scheduler"
    ORACLE = "oracle"


# Capabilities the owner holds without an explicit grant
OWNER_IMPLIED = {Role.MINTER, Role.REFRESH_ADMIN, Role.FEE_ADMIN}

# Roles held by exactly one external principal at a time
EXCLUSIVE_ROLES = {Role.SCHEDULER, Role.ORACLE}


class AccessControl:
    """Principal -> role table."""

    def __init__(self, owner: Hashable):
        self._roles: Dict[Hashable, Set[Role]] = {owner: {Role.OWNER}}
        self.owner = owner

    def grant(self, principal: Hashable, role: Role) -> None:
        role = Role(role)
        if role in EXCLUSIVE_ROLES:
            for held in self._roles.values():
                held.discard(role)
        self._roles.setdefault(principal, set()).add(role)
        logging.info(f"Granted {role.value} to {principal}")

    def revoke(self, principal: Hashable, role: Role) -> None:
        role = Role(role)
        if role is Role.OWNER:
            raise ValueError("The owner role cannot be revoked")
        self._roles.get(principal, set()).discard(role)
        logging.info(f"Revoked {role.value} from {principal}")

    def has_role(self, principal: Hashable, role: Role) -> bool:
        held = self._roles.get(principal, set())
        if role in held:
            return True
        return Role.OWNER in held and role in OWNER_IMPLIED

    def require(self, principal: Hashable, role: Role) -> None:
        if not self.has_role(principal, role):
            raise Unauthorized(f"{principal} lacks the {Role(role).value} role")

    def holder_of(self, role: Role) -> Optional[Hashable]:
        """The principal holding an exclusive role, if any."""
        for principal, held in self._roles.items():
            if role in held:
                return principal
        return None


class LifecycleGate:
    """
    Pause flag for the whole system plus the per-token active flag.

    The system starts paused: refresh and transfer stay blocked until
    an admin unpauses it.
    """

    def __init__(self, paused: bool = True, minting_enabled: bool = True):
        self.paused = paused
        self.minting_enabled = minting_enabled

    def pause(self) -> None:
        self.paused = True
        logging.info("System paused")

    def unpause(self) -> None:
        self.paused = False
        logging.info("System unpaused")

    def require_unpaused(self, action: str = "operation") -> None:
        if self.paused:
            raise SystemPaused(f"System is paused, {action} blocked")

    def require_minting(self) -> None:
        if not self.minting_enabled:
            raise SystemPaused("Minting is disabled")

    @staticmethod
    def set_active(target: RefreshTarget, token_id: int, active: bool) -> bool:
        """
        Activate or deactivate a token's refresh schedule.

        Idempotent in both directions.

        Returns:
            bool: True if the flag changed
        """
        changed = target.active != active
        target.active = active
        if changed:
            logging.info(f"Token {token_id} {'activated' if active else 'deactivated'}")
        return changed
