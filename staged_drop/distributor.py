"""
Distribution state machine.

A ``Distributor`` owns the global counters and the allocation registry and
drives three external collaborators: the ownership ledger that actually
holds units, payment settlement, and the reward ledger. The sibling supply
oracle is injected so the cross-collection cap can be tested without a
network.

Every participant call is atomic: the engine's state and every journaled
collaborator are snapshotted on entry and restored if anything fails,
including a refund that was already sent.
"""

import enum
import functools
import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import List, NamedTuple, Optional, Sequence

from .config import BASIS_POINTS, DEFAULT_CONFIG, DropConfig
from .errors import (
    ClaimUnavailable,
    FreeQuotaExceeded,
    InsufficientPayment,
    InvalidAmount,
    NotFreeEligible,
    NotWhitelisted,
    OperationSuspended,
    PerAddressCapExceeded,
    ReentrantCall,
    RefundFailed,
    StageClosed,
    Unauthorized,
)
from .ledger import Journaled, OwnershipLedger, PaymentSettlement
from .oracle import SiblingSupplyOracle
from .registry import AllocationRegistry, ParticipantRecord
from .rewards import RewardLedger, RewardShareForwarder
from .supply import SupplyLedger

logger = logging.getLogger(__name__)


class Stage(enum.Enum):
    CLOSED            = "closed"
    WHITELIST_PAID    = "whitelist_paid"
    PUBLIC_RESERVED   = "public_reserved"
    PUBLIC_UNRESERVED = "public_unreserved"


@dataclass
class StageFlags:
    whitelist_open: bool = False
    public_open: bool = False
    free_pool_reserved: bool = True

    @property
    def stage(self) -> Stage:
        if self.whitelist_open and not self.public_open and self.free_pool_reserved:
            return Stage.WHITELIST_PAID
        if self.public_open and not self.whitelist_open:
            if self.free_pool_reserved:
                return Stage.PUBLIC_RESERVED
            return Stage.PUBLIC_UNRESERVED
        return Stage.CLOSED


class RoyaltyInfo(NamedTuple):
    receiver: str
    amount: int


# ─────────────────────────────────────────────
#  GUARDS
# ─────────────────────────────────────────────

def only_owner(method):
    @functools.wraps(method)
    def wrapper(self, caller, *args, **kwargs):
        if caller != self.owner:
            logger.warning("%s rejected: %s is not the owner", method.__name__, caller)
            raise Unauthorized(caller)
        return method(self, caller, *args, **kwargs)
    return wrapper


def when_not_paused(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if self.paused:
            raise OperationSuspended(method.__name__)
        return method(self, *args, **kwargs)
    return wrapper


def nonreentrant(method):
    """Reject nested entry into any guarded method while one is running."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if self._entered:
            raise ReentrantCall(method.__name__)
        self._entered = True
        try:
            return method(self, *args, **kwargs)
        finally:
            self._entered = False
    return wrapper


# ─────────────────────────────────────────────
#  ENGINE
# ─────────────────────────────────────────────

class Distributor:
    def __init__(
        self,
        owner: str,
        ledger: OwnershipLedger,
        payments: PaymentSettlement,
        rewards: RewardLedger,
        sibling: SiblingSupplyOracle,
        config: DropConfig = DEFAULT_CONFIG,
    ):
        self.config = config
        self.owner = owner
        self.flags = StageFlags()
        self.paused = False
        self.registry = AllocationRegistry()
        self.supply = SupplyLedger(config)
        self.ledger = ledger
        self.payments = payments
        self.rewards = rewards
        self.forwarder = RewardShareForwarder(rewards)
        self.sibling = sibling
        self.royalty_receiver = owner
        self.royalty_bps = 0
        self.metadata_uri = ""
        self._entered = False

    # ── atomic scope ──

    def _journaled(self) -> List[Journaled]:
        parts = [self.registry, self.supply]
        parts += [c for c in (self.ledger, self.payments, self.rewards) if isinstance(c, Journaled)]
        return parts

    @contextmanager
    def _atomic(self, operation: str):
        parts = self._journaled()
        tokens = [p.snapshot() for p in parts]
        try:
            yield
        except Exception as e:
            for part, token in zip(parts, tokens):
                part.restore(token)
            logger.warning("%s rolled back: %s", operation, e)
            raise

    # ─────────────────────────────────────────
    #  PARTICIPANT OPERATIONS
    # ─────────────────────────────────────────

    @when_not_paused
    @nonreentrant
    def issue(self, to: str, amount: int, payment: int) -> Stage:
        """
        Issue ``amount`` paid units to ``to`` on whichever path the current
        stage selects. Overpayment is refunded to ``to``.

        Returns the stage the units were issued under.
        """
        self._check_request(amount, payment)
        stage = self.stage
        with self._atomic("issue"):
            if stage is Stage.WHITELIST_PAID:
                self._issue_whitelist(to, amount, payment)
            elif stage is Stage.PUBLIC_RESERVED:
                self._issue_public_reserved(to, amount, payment)
            elif stage is Stage.PUBLIC_UNRESERVED:
                self._issue_public_unreserved(to, amount, payment)
            else:
                raise StageClosed()
            self.supply.check(self.flags.free_pool_reserved)
        logger.info("issued %d units to %s (%s), total %d", amount, to, stage.value, self.supply.total_issued)
        return stage

    def _issue_whitelist(self, to: str, amount: int, payment: int) -> None:
        rec = self.registry.get(to)
        if not rec.is_whitelisted:
            raise NotWhitelisted(to)

        cap = self.config.max_per_address
        sibling = self.sibling.issued_count(to)
        effective_held = max(self.ledger.balance_of(to) - rec.free_claimed, 0) + sibling
        if effective_held + amount > cap:
            raise PerAddressCapExceeded(f"{effective_held} held + {amount} > {cap}")
        if cap - sibling < amount:
            raise PerAddressCapExceeded(f"{sibling} issued by sibling leaves less than {amount}")

        self._settle_payment(to, amount * self.config.whitelist_price, payment)
        self.supply.issue_reserved(amount)
        self.ledger.mint(to, amount)
        self.registry.record(to).paid_minted += amount
        self.forwarder.forward(to, amount)

    def _issue_public_reserved(self, to: str, amount: int, payment: int) -> None:
        # No per-address cap and no paid_minted bookkeeping on this path.
        self._settle_payment(to, amount * self.config.public_price, payment)
        self.supply.issue_reserved(amount)
        self.ledger.mint(to, amount)
        self.forwarder.forward(to, amount)

    def _issue_public_unreserved(self, to: str, amount: int, payment: int) -> None:
        self._settle_payment(to, amount * self.config.public_price, payment)
        self.supply.issue_unreserved(amount)
        self.ledger.mint(to, amount)
        self.forwarder.forward(to, amount)

    @when_not_paused
    @nonreentrant
    def claim_free(self, to: str, amount: int, payment: int = 0) -> ParticipantRecord:
        """
        Claim free units from the reserved pool.

        Only ``amount <= free_quota`` is checked up front; the claim is then
        applied and ``free_claimed <= free_quota`` is enforced afterwards,
        undoing the entire call when it does not hold. Any attached payment
        is kept.
        """
        self._check_request(amount, payment)
        if not self.flags.free_pool_reserved:
            raise ClaimUnavailable()
        rec = self.registry.get(to)
        if not rec.is_free_eligible:
            raise NotFreeEligible(to)
        if amount > rec.free_quota:
            raise FreeQuotaExceeded(f"{amount} > quota {rec.free_quota}")

        with self._atomic("claim_free"):
            self.payments.receive(payment)
            self.supply.issue_free(amount)
            self.ledger.mint(to, amount)
            rec = self.registry.record(to)
            rec.free_claimed += amount
            rec.check()
            self.supply.check(reserved=True)
            self.forwarder.forward(to, amount)
        logger.info("%s claimed %d free units (%d/%d)", to, amount, rec.free_claimed, rec.free_quota)
        return self.registry.get(to)

    def _check_request(self, amount: int, payment: int) -> None:
        if amount <= 0:
            raise InvalidAmount("amount must be positive")
        if payment < 0:
            raise InvalidAmount("payment must not be negative")

    def _settle_payment(self, to: str, due: int, payment: int) -> None:
        if payment < due:
            raise InsufficientPayment(f"paid {payment}, due {due}")
        self.payments.receive(payment)
        excess = payment - due
        if excess:
            try:
                self.payments.send(to, excess)
            except Exception as e:
                raise RefundFailed(f"{excess} to {to}") from e

    # ─────────────────────────────────────────
    #  ADMINISTRATION
    # ─────────────────────────────────────────

    @only_owner
    def open_whitelist_stage(self, caller: str) -> None:
        self.flags.whitelist_open = True
        self.flags.public_open = False
        logger.info("whitelist stage opened")

    @only_owner
    def open_public_stage(self, caller: str) -> None:
        self.flags.whitelist_open = False
        self.flags.public_open = True
        logger.info("public stage opened")

    @only_owner
    def close_stages(self, caller: str) -> None:
        self.flags.whitelist_open = False
        self.flags.public_open = False
        logger.info("sale stages closed")

    @only_owner
    def reserve_free_pool(self, caller: str) -> None:
        self.flags.free_pool_reserved = True
        logger.info("free pool reserved (%d remaining)", self.supply.free_pool_remaining)

    @only_owner
    def release_free_pool(self, caller: str) -> None:
        self.flags.free_pool_reserved = False
        logger.info("free pool released (%d remaining)", self.supply.free_pool_remaining)

    @only_owner
    def set_sibling_collection(self, caller: str, sibling: SiblingSupplyOracle) -> None:
        self.sibling = sibling

    @only_owner
    def grant_free_allocation(self, caller: str, addresses: Sequence[str], quotas: Sequence[int]) -> None:
        self.registry.grant_free_allocation(addresses, quotas)

    @only_owner
    def revoke_free_allocation(self, caller: str, addresses: Sequence[str]) -> None:
        self.registry.revoke_free_allocation(addresses)

    @only_owner
    def grant_whitelist(self, caller: str, addresses: Sequence[str]) -> None:
        self.registry.grant_whitelist(addresses)

    @only_owner
    def revoke_whitelist(self, caller: str, addresses: Sequence[str]) -> None:
        self.registry.revoke_whitelist(addresses)

    @only_owner
    def pause(self, caller: str) -> None:
        self.paused = True
        logger.info("participant operations paused")

    @only_owner
    def unpause(self, caller: str) -> None:
        self.paused = False
        logger.info("participant operations resumed")

    @only_owner
    def withdraw(self, caller: str) -> int:
        """Send every collected payment to the owner."""
        amount = self.payments.collected
        with self._atomic("withdraw"):
            if amount:
                self.payments.send(self.owner, amount)
        logger.info("withdrew %d to %s", amount, self.owner)
        return amount

    @only_owner
    def sweep_foreign_tokens(self, caller: str, token_id: int) -> int:
        """Move a foreign token balance held by the drop to the owner."""
        with self._atomic("sweep_foreign_tokens"):
            amount = self.payments.sweep_foreign(token_id, self.owner)
        logger.info("swept %d of token %d to %s", amount, token_id, self.owner)
        return amount

    @only_owner
    def set_default_royalty(self, caller: str, receiver: str, bps: int) -> None:
        if not 0 <= bps <= BASIS_POINTS:
            raise InvalidAmount(f"royalty {bps} bps out of range")
        self.royalty_receiver = receiver
        self.royalty_bps = bps

    @only_owner
    def set_uri(self, caller: str, uri: str) -> None:
        self.metadata_uri = uri

    @only_owner
    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        logger.info("ownership transferred from %s to %s", self.owner, new_owner)
        self.owner = new_owner

    # ─────────────────────────────────────────
    #  QUERIES
    # ─────────────────────────────────────────

    @property
    def stage(self) -> Stage:
        return self.flags.stage

    @property
    def stage_flags(self) -> StageFlags:
        return replace(self.flags)

    @property
    def free_pool_reserved(self) -> bool:
        return self.flags.free_pool_reserved

    @property
    def free_pool_remaining(self) -> int:
        return self.supply.free_pool_remaining

    @property
    def total_issued(self) -> int:
        return self.supply.total_issued

    def participant(self, address: str) -> ParticipantRecord:
        return self.registry.get(address)

    def remaining_allowance(self, address: str) -> int:
        """Units ``address`` may still buy on the whitelist path."""
        rec = self.registry.get(address)
        remaining = (
            self.config.max_per_address
            + rec.free_claimed
            - self.sibling.issued_count(address)
            - self.ledger.balance_of(address)
        )
        return max(remaining, 0)

    def royalty_info(self, sale_price: int) -> RoyaltyInfo:
        return RoyaltyInfo(self.royalty_receiver, sale_price * self.royalty_bps // BASIS_POINTS)

    def uri(self) -> str:
        return self.metadata_uri


def build_in_memory(
    owner: str,
    config: DropConfig = DEFAULT_CONFIG,
    sibling: Optional[SiblingSupplyOracle] = None,
) -> Distributor:
    """Distributor wired to in-memory collaborators."""
    from .ledger import InMemoryOwnershipLedger, InMemoryPayments
    from .oracle import StaticSiblingOracle
    from .rewards import InMemoryRewardLedger

    return Distributor(
        owner=owner,
        ledger=InMemoryOwnershipLedger(),
        payments=InMemoryPayments(),
        rewards=InMemoryRewardLedger(),
        sibling=sibling if sibling is not None else StaticSiblingOracle(),
        config=config,
    )
