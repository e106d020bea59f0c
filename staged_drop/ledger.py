"""
In-memory stand-ins for the collaborators the engine does not own: the
multi-unit ownership ledger and payment settlement.

Both journal their state so the engine can undo a failed call.
"""

import copy
from collections import defaultdict
from typing import Callable, Dict, Optional, Protocol, runtime_checkable

from .errors import InvalidAmount


@runtime_checkable
class Journaled(Protocol):
    def snapshot(self):
        ...

    def restore(self, token) -> None:
        ...


class OwnershipLedger(Protocol):
    def balance_of(self, address: str) -> int:
        ...

    def mint(self, address: str, amount: int) -> None:
        ...


class PaymentSettlement(Protocol):
    collected: int

    def receive(self, amount: int) -> None:
        ...

    def send(self, address: str, amount: int) -> None:
        ...

    def sweep_foreign(self, token_id: int, address: str) -> int:
        ...


class InMemoryOwnershipLedger:
    """Balances of the single unit identifier the drop issues."""

    def __init__(self):
        self.balances: Dict[str, int] = defaultdict(int)

    def balance_of(self, address: str) -> int:
        return self.balances.get(address, 0)

    def mint(self, address: str, amount: int) -> None:
        if amount <= 0:
            raise InvalidAmount("mint amount must be positive")
        self.balances[address] += amount

    def transfer(self, sender: str, receiver: str, amount: int) -> None:
        if amount <= 0 or self.balances.get(sender, 0) < amount:
            raise InvalidAmount(f"{sender} cannot transfer {amount}")
        self.balances[sender] -= amount
        self.balances[receiver] += amount

    def snapshot(self):
        return copy.deepcopy(self.balances)

    def restore(self, token) -> None:
        self.balances = token


ReceiveHook = Callable[[str, int], None]


class InMemoryPayments:
    """
    Holds collected payments and foreign token balances.

    ``hooks`` maps an address to a callable run whenever that address is
    paid, which is how tests model a recipient that calls back into the
    drop (or refuses the transfer by raising).
    """

    def __init__(self):
        self.collected = 0
        self.paid_out: Dict[str, int] = defaultdict(int)
        self.foreign: Dict[int, int] = defaultdict(int)
        self.foreign_paid_out: Dict[str, Dict[int, int]] = defaultdict(lambda: defaultdict(int))
        self.hooks: Dict[str, ReceiveHook] = {}

    def receive(self, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount("payment must not be negative")
        self.collected += amount

    def send(self, address: str, amount: int) -> None:
        if amount > self.collected:
            raise InvalidAmount(f"cannot send {amount}, holding {self.collected}")
        self.collected -= amount
        self.paid_out[address] += amount
        hook: Optional[ReceiveHook] = self.hooks.get(address)
        if hook is not None:
            hook(address, amount)

    def deposit_foreign(self, token_id: int, amount: int) -> None:
        self.foreign[token_id] += amount

    def sweep_foreign(self, token_id: int, address: str) -> int:
        amount = self.foreign.pop(token_id, 0)
        self.foreign_paid_out[address][token_id] += amount
        return amount

    def snapshot(self):
        return copy.deepcopy((self.collected, dict(self.paid_out), dict(self.foreign),
                              {a: dict(t) for a, t in self.foreign_paid_out.items()}))

    def restore(self, token) -> None:
        collected, paid_out, foreign, foreign_paid_out = token
        self.collected = collected
        self.paid_out = defaultdict(int, paid_out)
        self.foreign = defaultdict(int, foreign)
        self.foreign_paid_out = defaultdict(lambda: defaultdict(int))
        for address, tokens in foreign_paid_out.items():
            self.foreign_paid_out[address].update(tokens)
