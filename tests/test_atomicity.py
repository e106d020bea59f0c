import pytest

from conftest import ALICE, BOB, OWNER, snapshot
from staged_drop import Distributor
from staged_drop.errors import ReentrantCall, RefundFailed
from staged_drop.ledger import InMemoryOwnershipLedger, InMemoryPayments
from staged_drop.oracle import StaticSiblingOracle


class RejectingRecipient:
    def __call__(self, address, amount):
        raise RuntimeError(f"{address} refuses {amount}")


class BrokenRewards:
    def add_share(self, address, amount):
        raise ConnectionError("reward ledger unavailable")


def test_failed_refund_undoes_everything(public_drop, config):
    public_drop.payments.hooks[ALICE] = RejectingRecipient()
    before = snapshot(public_drop)

    with pytest.raises(RefundFailed) as exc:
        public_drop.issue(ALICE, 1, config.public_price + 5)

    assert isinstance(exc.value.__cause__, RuntimeError)
    assert snapshot(public_drop) == before


def test_failed_refund_on_whitelist_path_keeps_paid_minted(whitelist_drop, config):
    whitelist_drop.issue(ALICE, 1, config.whitelist_price)
    whitelist_drop.payments.hooks[ALICE] = RejectingRecipient()
    before = snapshot(whitelist_drop)

    with pytest.raises(RefundFailed):
        whitelist_drop.issue(ALICE, 2, 2 * config.whitelist_price + 3)

    assert snapshot(whitelist_drop) == before
    assert whitelist_drop.participant(ALICE).paid_minted == 1


def test_failed_refund_on_unreserved_path_restores_pool(public_drop, config):
    public_drop.release_free_pool(OWNER)
    public_drop.payments.hooks[ALICE] = RejectingRecipient()
    before = snapshot(public_drop)

    with pytest.raises(RefundFailed):
        public_drop.issue(ALICE, 3, 3 * config.public_price + 1)

    assert snapshot(public_drop) == before
    assert public_drop.free_pool_remaining == config.free_pool_size


def test_exact_payment_skips_refund(public_drop, config):
    public_drop.payments.hooks[ALICE] = RejectingRecipient()

    public_drop.issue(ALICE, 1, config.public_price)

    assert public_drop.total_issued == 1


def test_reentrant_issue_from_refund_is_rejected(public_drop, config):
    nested = []

    def reenter(address, amount):
        nested.append(amount)
        public_drop.issue(address, 1, config.public_price)

    public_drop.payments.hooks[ALICE] = reenter
    before = snapshot(public_drop)

    with pytest.raises(RefundFailed) as exc:
        public_drop.issue(ALICE, 1, config.public_price + 1)

    assert nested == [1]
    assert isinstance(exc.value.__cause__, ReentrantCall)
    assert snapshot(public_drop) == before


def test_reentrant_claim_from_refund_is_rejected(whitelist_drop, config):
    whitelist_drop.grant_free_allocation(OWNER, [ALICE], [3])

    def reenter(address, amount):
        whitelist_drop.claim_free(address, 1)

    whitelist_drop.payments.hooks[ALICE] = reenter

    with pytest.raises(RefundFailed) as exc:
        whitelist_drop.issue(ALICE, 1, config.whitelist_price * 2)

    assert isinstance(exc.value.__cause__, ReentrantCall)
    assert whitelist_drop.participant(ALICE).free_claimed == 0
    assert whitelist_drop.total_issued == 0


def test_guard_released_after_failure(public_drop, config):
    public_drop.payments.hooks[ALICE] = RejectingRecipient()
    with pytest.raises(RefundFailed):
        public_drop.issue(ALICE, 1, config.public_price + 1)

    del public_drop.payments.hooks[ALICE]
    public_drop.issue(ALICE, 1, config.public_price + 1)

    assert public_drop.total_issued == 1
    assert public_drop.payments.paid_out[ALICE] == 1


def test_reward_failure_rolls_back_mint_and_refund(config):
    ledger = InMemoryOwnershipLedger()
    payments = InMemoryPayments()
    drop = Distributor(OWNER, ledger, payments, BrokenRewards(), StaticSiblingOracle(), config)
    drop.open_public_stage(OWNER)

    with pytest.raises(ConnectionError):
        drop.issue(BOB, 2, 2 * config.public_price + 10)

    assert drop.total_issued == 0
    assert ledger.balance_of(BOB) == 0
    assert payments.collected == 0
    assert BOB not in payments.paid_out


def test_sibling_failure_leaves_no_trace(whitelist_drop, config):
    class Offline:
        def issued_count(self, address):
            raise TimeoutError("sibling unreachable")

    whitelist_drop.set_sibling_collection(OWNER, Offline())
    before = snapshot(whitelist_drop)

    with pytest.raises(TimeoutError):
        whitelist_drop.issue(ALICE, 1, config.whitelist_price)

    assert snapshot(whitelist_drop) == before
