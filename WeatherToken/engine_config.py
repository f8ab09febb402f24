"""Runtime configuration for the weather token engine."""
from dataclasses import dataclass
from typing import Optional

from token_materializer import MaterializationMode

DEFAULT_COOLDOWN_SECONDS = 86400
VALID_UNITS = ("metric", "imperial")


@dataclass
class EngineConfig:
    """Knobs the admin surface can change at runtime."""
    cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS
    oracle_fee: int = 0  # fee the oracle lists for one request
    units: str = "metric"
    max_supply: Optional[int] = None
    mode: MaterializationMode = MaterializationMode.CORRELATED
    retention_seconds: Optional[float] = None  # None keeps every request forever
    collection_name: str = "weatherNFT"
    symbol: str = "WNFT"

    def __post_init__(self):
        self.mode = MaterializationMode(self.mode)
        self.validate()

    def validate(self) -> None:
        if self.cooldown_seconds < 0:
            raise ValueError("cooldown_seconds cannot be negative")
        if self.oracle_fee < 0:
            raise ValueError("oracle_fee cannot be negative")
        if self.units not in VALID_UNITS:
            raise ValueError(f"units must be one of {VALID_UNITS}, got {self.units!r}")
        if self.retention_seconds is not None and self.retention_seconds <= 0:
            raise ValueError("retention_seconds must be positive")
