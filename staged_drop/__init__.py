"""
Staged Drop — capped, three-stage unit distribution with a cross-collection
per-address cap and reward-share reporting.

The off-chain engine lives in :mod:`staged_drop.distributor`; the Algorand
application in :mod:`staged_drop.contract`.
"""

from .config import DEFAULT_CONFIG, DropConfig
from .distributor import Distributor, RoyaltyInfo, Stage, StageFlags, build_in_memory
from .errors import DropError
from .registry import AllocationRegistry, ParticipantRecord
from .supply import SupplyLedger

__all__ = [
    "AllocationRegistry",
    "DEFAULT_CONFIG",
    "Distributor",
    "DropConfig",
    "DropError",
    "ParticipantRecord",
    "RoyaltyInfo",
    "Stage",
    "StageFlags",
    "SupplyLedger",
    "build_in_memory",
]
