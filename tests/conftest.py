"""
Pytest fixtures for the staged drop engine.

Every fixture wires a ``Distributor`` to in-memory collaborators so the
accounting can be checked without an Algorand node.
"""

import pytest

from staged_drop import DropConfig, build_in_memory
from staged_drop.oracle import StaticSiblingOracle

OWNER = "OWNER"
ALICE = "ALICE"
BOB   = "BOB"
CAROL = "CAROL"


@pytest.fixture
def config():
    return DropConfig()


@pytest.fixture
def sibling():
    return StaticSiblingOracle()


@pytest.fixture
def drop(config, sibling):
    return build_in_memory(OWNER, config, sibling)


@pytest.fixture
def whitelist_drop(drop):
    """Whitelist stage open, free pool reserved, ALICE and BOB whitelisted."""
    drop.open_whitelist_stage(OWNER)
    drop.grant_whitelist(OWNER, [ALICE, BOB])
    return drop


@pytest.fixture
def public_drop(drop):
    drop.open_public_stage(OWNER)
    return drop


def snapshot(drop):
    """Everything a rejected call must leave untouched."""
    return (
        drop.total_issued,
        drop.free_pool_remaining,
        {a: drop.participant(a) for a in (ALICE, BOB, CAROL)},
        dict(drop.ledger.balances),
        drop.payments.collected,
        dict(drop.payments.paid_out),
        dict(drop.rewards.shares),
        list(drop.rewards.reports),
    )
