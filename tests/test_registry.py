import pytest

from staged_drop.errors import BatchLengthMismatch, FreeQuotaExceeded, InvalidAmount
from staged_drop.registry import AllocationRegistry, ParticipantRecord


def test_unknown_address_reads_defaults_without_creating():
    registry = AllocationRegistry()
    rec = registry.get("NOBODY")
    assert rec == ParticipantRecord()
    assert "NOBODY" not in registry


def test_get_returns_a_copy():
    registry = AllocationRegistry()
    registry.grant_whitelist(["A"])
    registry.get("A").is_whitelisted = False
    assert registry.get("A").is_whitelisted


def test_grant_free_allocation_overwrites_quota():
    registry = AllocationRegistry()
    registry.grant_free_allocation(["A", "B"], [5, 2])
    registry.grant_free_allocation(["A"], [1])

    assert registry.get("A").free_quota == 1
    assert registry.get("A").is_free_eligible
    assert registry.get("B").free_quota == 2


def test_mismatched_batch_is_rejected_before_any_mutation():
    registry = AllocationRegistry()
    with pytest.raises(BatchLengthMismatch):
        registry.grant_free_allocation(["A", "B", "C"], [1, 2])
    assert len(registry) == 0


def test_negative_quota_rejected():
    with pytest.raises(InvalidAmount):
        AllocationRegistry().grant_free_allocation(["A"], [-1])


def test_revoke_whitelist_only_clears_flag():
    registry = AllocationRegistry()
    registry.grant_whitelist(["A"])
    registry.record("A").paid_minted = 4

    registry.revoke_whitelist(["A"])

    rec = registry.get("A")
    assert not rec.is_whitelisted
    assert rec.paid_minted == 4


def test_revoke_free_allocation_keeps_claimed_within_quota():
    registry = AllocationRegistry()
    registry.grant_free_allocation(["A"], [5])
    registry.record("A").free_claimed = 3

    registry.revoke_free_allocation(["A"])

    rec = registry.get("A")
    assert not rec.is_free_eligible
    assert rec.free_quota == 3
    assert rec.free_remaining == 0
    rec.check()


def test_check_rejects_over_claim():
    with pytest.raises(FreeQuotaExceeded):
        ParticipantRecord(is_free_eligible=True, free_quota=5, free_claimed=6).check()


def test_encode_matches_box_layout():
    rec = ParticipantRecord(
        is_whitelisted=True,
        is_free_eligible=True,
        free_quota=5,
        free_claimed=2,
        paid_minted=7,
    )
    raw = rec.encode()

    assert len(raw) == 32
    assert raw[0:8] == (3).to_bytes(8, "big")
    assert raw[8:16] == (5).to_bytes(8, "big")
    assert raw[16:24] == (2).to_bytes(8, "big")
    assert raw[24:32] == (7).to_bytes(8, "big")
    assert ParticipantRecord.decode(raw) == rec


def test_decode_rejects_wrong_size():
    with pytest.raises(ValueError):
        ParticipantRecord.decode(b"\x00" * 31)


def test_regrant_never_drops_quota_below_claimed():
    registry = AllocationRegistry()
    registry.grant_free_allocation(["A"], [5])
    registry.record("A").free_claimed = 4

    registry.grant_free_allocation(["A"], [1])

    assert registry.get("A").free_quota == 4
    registry.get("A").check()
