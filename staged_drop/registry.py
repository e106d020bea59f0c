"""
Allocation registry: per-address whitelist membership, free allocations and
issuance counters.

Records are created lazily with false/0 defaults the first time an address
is granted something or receives units.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Dict, Sequence

from .errors import BatchLengthMismatch, FreeQuotaExceeded, InvalidAmount

logger = logging.getLogger(__name__)

# Flag bits of the on-chain participant box ([0:8])
FLAG_WHITELISTED   = 1 << 0
FLAG_FREE_ELIGIBLE = 1 << 1

RECORD_SIZE = 32   # flags | free_quota | free_claimed | paid_minted


@dataclass
class ParticipantRecord:
    is_whitelisted: bool = False
    is_free_eligible: bool = False
    free_quota: int = 0
    free_claimed: int = 0
    paid_minted: int = 0

    @property
    def free_remaining(self) -> int:
        return max(self.free_quota - self.free_claimed, 0)

    def check(self) -> None:
        """Hard post-condition: a participant never claims beyond its quota."""
        if self.free_claimed > self.free_quota:
            raise FreeQuotaExceeded(
                f"claimed {self.free_claimed} of quota {self.free_quota}"
            )

    @property
    def flags(self) -> int:
        bits = 0
        if self.is_whitelisted:
            bits |= FLAG_WHITELISTED
        if self.is_free_eligible:
            bits |= FLAG_FREE_ELIGIBLE
        return bits

    def encode(self) -> bytes:
        """Pack into the 32-byte box layout used on chain."""
        return b"".join(
            value.to_bytes(8, "big")
            for value in (self.flags, self.free_quota, self.free_claimed, self.paid_minted)
        )

    @classmethod
    def decode(cls, raw: bytes) -> "ParticipantRecord":
        if len(raw) != RECORD_SIZE:
            raise ValueError(f"participant box must be {RECORD_SIZE} bytes, got {len(raw)}")
        flags, quota, claimed, minted = (
            int.from_bytes(raw[i:i + 8], "big") for i in range(0, RECORD_SIZE, 8)
        )
        return cls(
            is_whitelisted=bool(flags & FLAG_WHITELISTED),
            is_free_eligible=bool(flags & FLAG_FREE_ELIGIBLE),
            free_quota=quota,
            free_claimed=claimed,
            paid_minted=minted,
        )


class AllocationRegistry:
    def __init__(self):
        self._records: Dict[str, ParticipantRecord] = {}

    def __contains__(self, address: str) -> bool:
        return address in self._records

    def __len__(self) -> int:
        return len(self._records)

    def get(self, address: str) -> ParticipantRecord:
        """Read-only view; unknown addresses get a fresh default record."""
        return copy.copy(self._records.get(address, ParticipantRecord()))

    def record(self, address: str) -> ParticipantRecord:
        """Mutable record, created on first touch."""
        if address not in self._records:
            self._records[address] = ParticipantRecord()
        return self._records[address]

    # ── batch grants ──

    def grant_free_allocation(self, addresses: Sequence[str], quotas: Sequence[int]) -> None:
        if len(addresses) != len(quotas):
            raise BatchLengthMismatch(f"{len(addresses)} addresses, {len(quotas)} quotas")
        if any(q < 0 for q in quotas):
            raise InvalidAmount("quota must not be negative")
        for address, quota in zip(addresses, quotas):
            rec = self.record(address)
            rec.is_free_eligible = True
            # never below what the address already claimed
            rec.free_quota = max(quota, rec.free_claimed)
        logger.info("granted free allocation to %d addresses", len(addresses))

    def revoke_free_allocation(self, addresses: Sequence[str]) -> None:
        for address in addresses:
            rec = self.record(address)
            rec.is_free_eligible = False
            rec.free_quota = rec.free_claimed
        logger.info("revoked free allocation from %d addresses", len(addresses))

    def grant_whitelist(self, addresses: Sequence[str]) -> None:
        for address in addresses:
            self.record(address).is_whitelisted = True
        logger.info("whitelisted %d addresses", len(addresses))

    def revoke_whitelist(self, addresses: Sequence[str]) -> None:
        # Already-issued units stay where they are.
        for address in addresses:
            self.record(address).is_whitelisted = False
        logger.info("removed %d addresses from the whitelist", len(addresses))

    # ── journaling ──

    def snapshot(self):
        return copy.deepcopy(self._records)

    def restore(self, token) -> None:
        self._records = token
