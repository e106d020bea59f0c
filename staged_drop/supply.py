"""Global issued count and the two supply ceilings."""

import logging
from dataclasses import dataclass, replace
from typing import Optional

from .config import DropConfig
from .errors import FreePoolExhausted, SupplyExhausted

logger = logging.getLogger(__name__)


@dataclass
class SupplyLedger:
    """
    Monotonic issued counter plus the free-pool reservation.

    While the free pool is reserved, paid issuance is capped at
    ``total_cap - free_pool_remaining``; once released, at ``total_cap``.
    """

    config: DropConfig
    total_issued: int = 0
    free_pool_remaining: Optional[int] = None

    def __post_init__(self):
        if self.free_pool_remaining is None:
            self.free_pool_remaining = self.config.free_pool_size

    @property
    def paid_ceiling(self) -> int:
        return self.config.total_cap - self.free_pool_remaining

    def issue_reserved(self, amount: int) -> None:
        """Count paid units while the free pool is held back."""
        issued = self.total_issued + amount
        if issued > self.paid_ceiling:
            raise SupplyExhausted(f"{issued} > paid ceiling {self.paid_ceiling}")
        self.total_issued = issued

    def issue_unreserved(self, amount: int) -> None:
        """
        Count paid units after the pool was released.

        The free-pool counter still has to be non-zero and is drawn down by
        the paid amount.
        """
        if self.free_pool_remaining == 0:
            raise FreePoolExhausted("no free-pool units left to draw against")
        if amount > self.free_pool_remaining:
            raise FreePoolExhausted(f"{amount} > {self.free_pool_remaining} remaining")
        issued = self.total_issued + amount
        if issued > self.config.total_cap:
            raise SupplyExhausted(f"{issued} > total cap {self.config.total_cap}")
        self.total_issued = issued
        self.free_pool_remaining -= amount
        logger.debug("paid issuance of %d drew the free pool down to %d", amount, self.free_pool_remaining)

    def issue_free(self, amount: int) -> None:
        """Count claimed units, drawing them out of the free pool."""
        if self.free_pool_remaining == 0:
            raise FreePoolExhausted()
        if amount > self.free_pool_remaining:
            raise FreePoolExhausted(f"{amount} > {self.free_pool_remaining} remaining")
        self.free_pool_remaining -= amount
        self.total_issued += amount

    def check(self, reserved: bool) -> None:
        """Post-condition run after every issuance and claim."""
        if self.total_issued > self.config.total_cap:
            raise SupplyExhausted(f"{self.total_issued} > total cap")
        if reserved and self.total_issued > self.paid_ceiling:
            raise SupplyExhausted(f"{self.total_issued} > paid ceiling {self.paid_ceiling}")

    def snapshot(self):
        return replace(self)

    def restore(self, token) -> None:
        self.total_issued = token.total_issued
        self.free_pool_remaining = token.free_pool_remaining
