"""Reward-share forwarding: one share per issued unit, reported to an external ledger."""

import copy
import logging
from collections import defaultdict
from typing import Dict, List, Protocol, Tuple

from .errors import InvalidAmount

logger = logging.getLogger(__name__)


class RewardLedger(Protocol):
    def add_share(self, address: str, amount: int) -> None:
        ...


class InMemoryRewardLedger:
    def __init__(self):
        self.shares: Dict[str, int] = defaultdict(int)
        self.reports: List[Tuple[str, int]] = []

    def add_share(self, address: str, amount: int) -> None:
        self.shares[address] += amount
        self.reports.append((address, amount))

    def snapshot(self):
        return copy.deepcopy((self.shares, self.reports))

    def restore(self, token) -> None:
        self.shares, self.reports = token


class RewardShareForwarder:
    """Reports ``(recipient, quantity)`` after each committed issuance or claim."""

    def __init__(self, ledger: RewardLedger):
        self.ledger = ledger

    def forward(self, recipient: str, quantity: int) -> None:
        if quantity <= 0:
            raise InvalidAmount("share increment must be positive")
        self.ledger.add_share(recipient, quantity)
        logger.debug("reported %d shares for %s", quantity, recipient)
