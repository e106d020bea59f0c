"""CLI helpers that talk to algod, run against stubs."""

import base64
from types import SimpleNamespace

import pytest
from algosdk import account
from algosdk.error import AlgodHTTPError
from algosdk.transaction import SuggestedParams

from staged_drop import ParticipantRecord
from staged_drop import client as cli

APP_ID = 77
GENESIS_HASH = "SGO1GKSzyE7IEPItTxCByw9x8FmnrCDexi9/cOUJOiI="


class StubAlgod:
    def __init__(self, boxes=None, error_code=404):
        self.boxes = boxes or {}
        self.error_code = error_code
        self.sent = []

    def application_box_by_name(self, app_id, name):
        if name not in self.boxes:
            raise AlgodHTTPError("box not found", code=self.error_code)
        return {"name": base64.b64encode(name).decode(), "value": base64.b64encode(self.boxes[name]).decode()}

    def suggested_params(self):
        return SuggestedParams(fee=1000, first=1, last=1001, gh=GENESIS_HASH, flat_fee=True)

    def send_transaction(self, signed):
        self.sent.append(signed)
        return signed.transaction.get_txid()


class StubAppClient:
    def __init__(self, app_addr):
        self.app_id = APP_ID
        self.app_addr = app_addr
        self.calls = []

    def call(self, method, **kwargs):
        self.calls.append((method, kwargs))


@pytest.fixture
def owner():
    return account.generate_account()


@pytest.fixture
def holders():
    return [account.generate_account()[1] for _ in range(3)]


@pytest.fixture
def wired(monkeypatch, owner):
    """Point the CLI at a stub node and a stub app client."""
    algod_client = StubAlgod()
    app_client   = StubAppClient(account.generate_account()[1])
    monkeypatch.setattr(cli, "get_algod", lambda: algod_client)
    monkeypatch.setattr(cli, "get_app_client", lambda private_key, app_id=None: app_client)
    monkeypatch.setattr(cli, "wait_for_confirmation", lambda client, txid, rounds: None)
    return SimpleNamespace(algod=algod_client, app=app_client)


def test_read_participant_decodes_box(holders):
    rec = ParticipantRecord(is_whitelisted=True, free_quota=4, free_claimed=1, paid_minted=2)
    node = StubAlgod({cli.participant_box(holders[0]): rec.encode()})

    assert cli.read_participant(node, APP_ID, holders[0]) == rec


def test_read_participant_without_box(holders):
    assert cli.read_participant(StubAlgod(), APP_ID, holders[0]) is None


def test_read_participant_propagates_node_errors(holders):
    with pytest.raises(AlgodHTTPError):
        cli.read_participant(StubAlgod(error_code=500), APP_ID, holders[0])


def test_fund_boxes_skips_existing_boxes(wired, owner, holders):
    private_key, address = owner
    wired.algod.boxes[cli.participant_box(holders[0])] = ParticipantRecord().encode()

    funded = cli.fund_boxes(private_key, address, holders + [holders[1]])

    assert funded == 2
    (payment,) = wired.algod.sent
    assert payment.transaction.amt == cli.BOX_FUNDING * 2
    assert payment.transaction.receiver == wired.app.app_addr


def test_fund_boxes_sends_nothing_when_all_exist(wired, owner, holders):
    private_key, address = owner
    for holder in holders:
        wired.algod.boxes[cli.participant_box(holder)] = ParticipantRecord().encode()

    assert cli.fund_boxes(private_key, address, holders) == 0
    assert wired.algod.sent == []


@pytest.mark.parametrize("helper,method", [
    (cli.grant_whitelist, "grant_whitelist"),
    (cli.revoke_whitelist, "revoke_whitelist"),
])
def test_whitelist_helpers_call_their_method(wired, owner, holders, helper, method):
    private_key, address = owner

    helper(private_key, address, holders)

    assert [name for name, _ in wired.app.calls] == [method]
    _, kwargs = wired.app.calls[0]
    assert kwargs["addresses"] == holders
    assert kwargs["boxes"] == [(APP_ID, cli.participant_box(h)) for h in holders]


def test_batches_respect_box_reference_limit(wired, owner):
    private_key, address = owner
    many = [account.generate_account()[1] for _ in range(cli.MAX_BATCH + 2)]

    cli.revoke_free_allocation(private_key, address, many)

    sizes = [len(kwargs["addresses"]) for _, kwargs in wired.app.calls]
    assert sizes == [cli.MAX_BATCH, 2]
