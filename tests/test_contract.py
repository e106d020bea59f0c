"""Compile the application and check its interface against the engine."""

import pytest

from staged_drop import DEFAULT_CONFIG, ParticipantRecord
from staged_drop import contract


@pytest.fixture(scope="module")
def app_spec():
    return contract.app.build()


def test_approval_program_compiles(app_spec):
    assert app_spec.approval_program
    assert app_spec.clear_program


def test_abi_surface(app_spec):
    names = {m.name for m in app_spec.contract.methods}
    assert {
        "bootstrap",
        "issue",
        "claim_free",
        "open_whitelist_stage",
        "open_public_stage",
        "close_stages",
        "reserve_free_pool",
        "release_free_pool",
        "set_sibling_collection",
        "pause",
        "unpause",
        "grant_free_allocation",
        "revoke_free_allocation",
        "grant_whitelist",
        "revoke_whitelist",
        "withdraw",
        "sweep_foreign_tokens",
        "set_default_royalty",
        "set_uri",
        "transfer_ownership",
        "get_stage_flags",
        "get_supply",
        "get_participant",
        "remaining_allowance",
        "royalty_info",
        "get_uri",
    } <= names


def test_box_layout_matches_record_encoding():
    rec = ParticipantRecord(is_whitelisted=True, is_free_eligible=True,
                            free_quota=7, free_claimed=3, paid_minted=9)
    raw = rec.encode()

    def field(offset):
        start = offset.value
        return int.from_bytes(raw[start:start + 8], "big")

    assert len(raw) == contract.RECORD_BYTES.value
    assert field(contract.OFF_FLAGS) == contract.FLAG_WL.value | contract.FLAG_FREE.value
    assert field(contract.OFF_QUOTA) == 7
    assert field(contract.OFF_CLAIMED) == 3
    assert field(contract.OFF_MINTED) == 9
    assert ParticipantRecord.decode(raw) == rec


def test_sale_constants_follow_default_config():
    assert contract.TOTAL_CAP.value == DEFAULT_CONFIG.total_cap
    assert contract.FREE_POOL_SIZE.value == DEFAULT_CONFIG.free_pool_size
    assert contract.MAX_PER_ADDRESS.value == DEFAULT_CONFIG.max_per_address
    assert contract.WHITELIST_PRICE.value == DEFAULT_CONFIG.whitelist_price
    assert contract.PUBLIC_PRICE.value == DEFAULT_CONFIG.public_price
