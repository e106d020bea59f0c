import pytest

from conftest import ALICE, BOB, OWNER, snapshot
from staged_drop import DropConfig, Stage, build_in_memory
from staged_drop.errors import FreePoolExhausted, InsufficientPayment, StageClosed, SupplyExhausted


def test_closed_before_any_stage_opens(drop, config):
    assert drop.stage is Stage.CLOSED
    with pytest.raises(StageClosed):
        drop.issue(ALICE, 1, config.public_price)


def test_whitelist_stage_with_released_pool_is_closed(drop, config):
    drop.open_whitelist_stage(OWNER)
    drop.grant_whitelist(OWNER, [ALICE])
    drop.release_free_pool(OWNER)
    before = snapshot(drop)

    assert drop.stage is Stage.CLOSED
    with pytest.raises(StageClosed):
        drop.issue(ALICE, 1, config.whitelist_price)
    assert snapshot(drop) == before


def test_public_reserved_has_no_per_address_cap(public_drop, config):
    """The public path skips the per-address cap and paid_minted bookkeeping."""
    public_drop.issue(ALICE, 15, 15 * config.public_price)

    assert public_drop.ledger.balance_of(ALICE) == 15
    assert public_drop.participant(ALICE).paid_minted == 0
    assert public_drop.rewards.shares[ALICE] == 15


def test_public_reserved_boundary(public_drop, config):
    """At 489 issued with an 11-unit pool reserved, the next unit would make 490 > 489."""
    public_drop.issue(BOB, 489, 489 * config.public_price)
    before = snapshot(public_drop)

    with pytest.raises(SupplyExhausted):
        public_drop.issue(ALICE, 1, config.public_price)
    assert snapshot(public_drop) == before


def test_public_price_applies(public_drop, config):
    with pytest.raises(InsufficientPayment):
        public_drop.issue(ALICE, 1, config.whitelist_price)


def test_public_overpayment_refunded(public_drop, config):
    public_drop.issue(ALICE, 2, 2 * config.public_price + 5)
    assert public_drop.payments.paid_out[ALICE] == 5
    assert public_drop.payments.collected == 2 * config.public_price


def test_unreserved_overpayment_refunded(public_drop, config):
    public_drop.release_free_pool(OWNER)

    public_drop.issue(ALICE, 2, 2 * config.public_price + 7)

    assert public_drop.payments.paid_out[ALICE] == 7
    assert public_drop.payments.collected == 2 * config.public_price
    assert public_drop.free_pool_remaining == config.free_pool_size - 2


def test_unreserved_draws_free_pool_counter(public_drop, config):
    public_drop.release_free_pool(OWNER)
    assert public_drop.stage is Stage.PUBLIC_UNRESERVED

    public_drop.issue(ALICE, 4, 4 * config.public_price)

    assert public_drop.total_issued == 4
    assert public_drop.free_pool_remaining == config.free_pool_size - 4
    assert public_drop.rewards.reports == [(ALICE, 4)]


def test_unreserved_stops_when_free_pool_counter_hits_zero(public_drop, config):
    public_drop.release_free_pool(OWNER)
    public_drop.issue(ALICE, config.free_pool_size, config.free_pool_size * config.public_price)

    with pytest.raises(FreePoolExhausted):
        public_drop.issue(BOB, 1, config.public_price)


def test_unreserved_never_exceeds_total_cap(sibling):
    drop = build_in_memory(OWNER, DropConfig(total_cap=20, free_pool_size=11), sibling)
    drop.open_public_stage(OWNER)
    price = drop.config.public_price

    drop.issue(ALICE, 9, 9 * price)
    with pytest.raises(SupplyExhausted):
        drop.issue(ALICE, 1, price)

    drop.release_free_pool(OWNER)
    drop.issue(BOB, 11, 11 * price)
    assert drop.total_issued == 20

    with pytest.raises(FreePoolExhausted):
        drop.issue(BOB, 1, price)
    assert drop.total_issued == 20


def test_reserving_again_restores_reserved_path(public_drop, config):
    public_drop.release_free_pool(OWNER)
    public_drop.issue(ALICE, 1, config.public_price)
    public_drop.reserve_free_pool(OWNER)

    assert public_drop.stage is Stage.PUBLIC_RESERVED
    public_drop.issue(ALICE, 1, config.public_price)
    assert public_drop.free_pool_remaining == config.free_pool_size - 1


def test_close_stages(public_drop, config):
    public_drop.close_stages(OWNER)
    with pytest.raises(StageClosed):
        public_drop.issue(ALICE, 1, config.public_price)
