"""
Sibling supply oracle: how many units a sibling collection already issued
to an address.

Queried fresh on every whitelist validation. Errors from the sibling are
never masked; they fail the enclosing call.
"""

import logging
from typing import Dict, Optional, Protocol, runtime_checkable

from algosdk.abi import Method
from algosdk.atomic_transaction_composer import AtomicTransactionComposer, TransactionSigner
from algosdk.v2client import algod

from .config import ISSUED_COUNT_SIGNATURE
from .errors import SiblingQueryFailed

logger = logging.getLogger(__name__)

ISSUED_COUNT = Method.from_signature(ISSUED_COUNT_SIGNATURE)


@runtime_checkable
class SiblingSupplyOracle(Protocol):
    def issued_count(self, address: str) -> int:
        ...


class StaticSiblingOracle:
    """In-memory sibling collection; counts are set directly."""

    def __init__(self, counts: Optional[Dict[str, int]] = None):
        self.counts: Dict[str, int] = dict(counts or {})
        self.queries = 0

    def issued_count(self, address: str) -> int:
        self.queries += 1
        return self.counts.get(address, 0)


class AlgodSiblingOracle:
    """
    Asks the sibling application over algod, through the same ABI method the
    drop's contract calls: ``issued_count(address)uint64``.

    The call is simulated, so nothing is submitted or paid for. A failed
    simulation raises :class:`SiblingQueryFailed`.
    """

    def __init__(
        self,
        client: algod.AlgodClient,
        app_id: int,
        sender: str,
        signer: TransactionSigner,
    ):
        self.client = client
        self.app_id = app_id
        self.sender = sender
        self.signer = signer

    def compose(self, address: str) -> AtomicTransactionComposer:
        atc = AtomicTransactionComposer()
        atc.add_method_call(
            app_id=self.app_id,
            method=ISSUED_COUNT,
            sender=self.sender,
            sp=self.client.suggested_params(),
            signer=self.signer,
            method_args=[address],
        )
        return atc

    def issued_count(self, address: str) -> int:
        response = self.compose(address).simulate(self.client)
        if response.failure_message:
            raise SiblingQueryFailed(f"app {self.app_id}: {response.failure_message}")
        result = response.abi_results[0]
        if result.decode_error:
            raise SiblingQueryFailed(f"app {self.app_id}: {result.decode_error}")
        count = result.return_value
        logger.debug("sibling app %d reports %d issued to %s", self.app_id, count, address)
        return count
