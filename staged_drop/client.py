"""
╔══════════════════════════════════════════════════════════════════╗
║       STAGED DROP — Deployment & Client Script                   ║
║       staged_drop/client.py                                      ║
║                                                                  ║
║  Usage:                                                          ║
║    staged-drop deploy --rewards-app 123 --sibling-app 456        ║
║    staged-drop stage whitelist                                   ║
║    staged-drop whitelist --add ADDR1 ADDR2                       ║
║    staged-drop issue --to ADDR --amount 3 --pay 60               ║
║    staged-drop claim --to ADDR --amount 2                        ║
║    staged-drop participant --address ADDR                        ║
╚══════════════════════════════════════════════════════════════════╝
"""

import argparse
import base64
import logging
import os
from typing import Optional

from algosdk import account, encoding, mnemonic
from algosdk.atomic_transaction_composer import AccountTransactionSigner, TransactionWithSigner
from algosdk.error import AlgodHTTPError
from algosdk.logic import get_application_address
from algosdk.transaction import AssetOptInTxn, PaymentTxn, wait_for_confirmation
from algosdk.v2client import algod, indexer
from beaker.client import ApplicationClient

from . import config
from .config import DEFAULT_CONFIG, MICROALGOS_PER_ALGO
from .errors import BatchLengthMismatch
from .oracle import AlgodSiblingOracle
from .registry import ParticipantRecord

logger = logging.getLogger(__name__)

# Outer call + refund + sibling query + unit transfer + share report
ISSUE_TXN_COUNT = 5
CLAIM_TXN_COUNT = 3
# Bootstrap seed: app account + ASA holding
BOOTSTRAP_SEED = 300_000
# One participant box: 2500 + 400 × (key + value)
BOX_FUNDING = 2_500 + 400 * (1 + 32 + 32)
# Box references per call is capped by the protocol
MAX_BATCH = 7


# ─────────────────────────────────────────────
#  CLIENTS
# ─────────────────────────────────────────────
def get_algod() -> algod.AlgodClient:
    return algod.AlgodClient(config.ALGOD_TOKEN, config.ALGOD_ADDRESS)


def get_indexer() -> indexer.IndexerClient:
    return indexer.IndexerClient(config.INDEXER_TOKEN, config.INDEXER_ADDRESS)


def load_account(env_var: str = config.MNEMONIC_ENV) -> tuple[str, str]:
    """
    Load an Algorand account from a mnemonic stored in env variable.
    Returns (private_key, address)
    """
    mn = os.environ.get(env_var)
    if not mn:
        # Generate a fresh testnet account for demo purposes
        private_key, address = account.generate_account()
        print(f"\n⚠  No {env_var} set. Generated fresh account:")
        print(f"   Address  : {address}")
        print(f"   Mnemonic : {mnemonic.from_private_key(private_key)}")
        print(f"\n   Fund this address at: https://bank.testnet.algorand.network")
        print(f"   Then set: export {env_var}='<your mnemonic>'\n")
        return private_key, address
    private_key = mnemonic.to_private_key(mn)
    address     = account.address_from_private_key(private_key)
    return private_key, address


def get_app_client(private_key: str, app_id: Optional[int] = None) -> ApplicationClient:
    from .contract import app as drop_app

    return ApplicationClient(
        get_algod(),
        drop_app,
        app_id=config.APP_ID if app_id is None else app_id,
        signer=AccountTransactionSigner(private_key),
    )


def participant_box(address: str) -> bytes:
    return b"p" + encoding.decode_address(address)


def pooled_params(client: algod.AlgodClient, txn_count: int):
    """Suggested params covering `txn_count` min fees, so inner txns can run at fee 0."""
    sp = client.suggested_params()
    sp.flat_fee = True
    sp.fee = sp.min_fee * txn_count
    return sp


def unit_asset_id(app_client: ApplicationClient) -> int:
    return app_client.get_global_state()["unit_asset"]


# ─────────────────────────────────────────────
#  DEPLOY
# ─────────────────────────────────────────────
def deploy(
    private_key: str,
    address: str,
    rewards_app: int,
    sibling_app: int,
    asset_name: str,
    unit_name: str,
    uri: str = "",
) -> int:
    """Compile, create and bootstrap the drop. Returns the new app ID."""
    app_client = get_app_client(private_key, app_id=0)

    print("🔨 Compiling Staged Drop contract...")
    app_id, app_addr, tx_id = app_client.create(rewards_app=rewards_app, sibling_app=sibling_app)
    print(f"   Transaction: {tx_id}")
    print(f"✅ Deployed! App ID: {app_id}")
    print(f"   App address: {app_addr}")

    if uri:
        app_client.call("set_uri", uri=uri)

    sp   = get_algod().suggested_params()
    seed = PaymentTxn(sender=address, sp=sp, receiver=app_addr, amt=BOOTSTRAP_SEED)
    result = app_client.call(
        "bootstrap",
        seed=TransactionWithSigner(txn=seed, signer=AccountTransactionSigner(private_key)),
        asset_name=asset_name,
        unit_name=unit_name,
        suggested_params=pooled_params(get_algod(), 2),
    )
    print(f"🎨 Unit ASA created: {result.return_value}")
    print(f"   Set: export STAGED_DROP_APP_ID={app_id}")
    logger.info("deployed drop app %d with unit asset %d", app_id, result.return_value)
    return app_id


# ─────────────────────────────────────────────
#  ADMINISTRATION
# ─────────────────────────────────────────────
STAGE_METHODS = {
    "whitelist": "open_whitelist_stage",
    "public":    "open_public_stage",
    "closed":    "close_stages",
    "reserve":   "reserve_free_pool",
    "release":   "release_free_pool",
    "pause":     "pause",
    "unpause":   "unpause",
}


def set_stage(private_key: str, transition: str) -> None:
    method = STAGE_METHODS[transition]
    get_app_client(private_key).call(method)
    print(f"✅ {method} applied")


def set_sibling(private_key: str, sibling_app: int) -> None:
    get_app_client(private_key).call("set_sibling_collection", sibling_app=sibling_app)
    print(f"✅ Sibling collection set to app {sibling_app}")


def read_participant(client: algod.AlgodClient, app_id: int, who: str) -> Optional[ParticipantRecord]:
    """Decode `who`'s participant box; None when no box exists yet."""
    try:
        box = client.application_box_by_name(app_id, participant_box(who))
    except AlgodHTTPError as e:
        if e.code == 404:
            return None
        raise
    return ParticipantRecord.decode(base64.b64decode(box["value"]))


def fund_boxes(private_key: str, address: str, addresses: list[str]) -> int:
    """
    Top up the app account for the participant boxes a batch will create.

    Addresses that already have a box are skipped. Returns how many boxes
    were funded.
    """
    client     = get_algod()
    app_client = get_app_client(private_key)
    missing    = {a for a in addresses if read_participant(client, app_client.app_id, a) is None}
    if not missing:
        return 0

    txn = PaymentTxn(
        sender=address,
        sp=client.suggested_params(),
        receiver=app_client.app_addr,
        amt=BOX_FUNDING * len(missing),
    )
    signed = txn.sign(private_key)
    wait_for_confirmation(client, client.send_transaction(signed), 4)
    return len(missing)


def _batched(items: list, size: int = MAX_BATCH):
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _call_batches(private_key: str, address: str, method: str, addresses: list[str]) -> None:
    app_client = get_app_client(private_key)
    fund_boxes(private_key, address, addresses)
    for batch in _batched(addresses):
        app_client.call(
            method,
            addresses=batch,
            boxes=[(app_client.app_id, participant_box(a)) for a in batch],
        )
        print(f"📋 {method}: {len(batch)} addresses")


def grant_whitelist(private_key: str, address: str, addresses: list[str]) -> None:
    _call_batches(private_key, address, "grant_whitelist", addresses)


def revoke_whitelist(private_key: str, address: str, addresses: list[str]) -> None:
    _call_batches(private_key, address, "revoke_whitelist", addresses)


def grant_free_allocation(private_key: str, address: str, addresses: list[str], quotas: list[int]) -> None:
    if len(addresses) != len(quotas):
        raise BatchLengthMismatch(f"{len(addresses)} addresses, {len(quotas)} quotas")

    app_client = get_app_client(private_key)
    fund_boxes(private_key, address, addresses)
    pairs = list(zip(addresses, quotas))
    for batch in _batched(pairs):
        app_client.call(
            "grant_free_allocation",
            addresses=[a for a, _ in batch],
            quotas=[q for _, q in batch],
            boxes=[(app_client.app_id, participant_box(a)) for a, _ in batch],
        )
        print(f"🎁 Free allocation granted to {len(batch)} addresses")


def revoke_free_allocation(private_key: str, address: str, addresses: list[str]) -> None:
    app_client = get_app_client(private_key)
    fund_boxes(private_key, address, addresses)
    for batch in _batched(addresses):
        app_client.call(
            "revoke_free_allocation",
            addresses=batch,
            boxes=[(app_client.app_id, participant_box(a)) for a in batch],
        )
        print(f"🚫 Free allocation revoked for {len(batch)} addresses")


def withdraw(private_key: str) -> int:
    result = get_app_client(private_key).call("withdraw", suggested_params=pooled_params(get_algod(), 2))
    print(f"💰 Withdrew {result.return_value / MICROALGOS_PER_ALGO} ALGO")
    return result.return_value


def sweep(private_key: str, asset_id: int) -> int:
    result = get_app_client(private_key).call(
        "sweep_foreign_tokens",
        asset=asset_id,
        suggested_params=pooled_params(get_algod(), 2),
    )
    print(f"🧹 Swept {result.return_value} of ASA {asset_id} to owner")
    return result.return_value


# ─────────────────────────────────────────────
#  ISSUE / CLAIM
# ─────────────────────────────────────────────
def opt_in(private_key: str, address: str, asset_id: int) -> None:
    client = get_algod()
    txn    = AssetOptInTxn(sender=address, sp=client.suggested_params(), index=asset_id)
    signed = txn.sign(private_key)
    client.send_transaction(signed)
    wait_for_confirmation(client, signed.transaction.get_txid(), 4)
    print(f"   Opted into ASA {asset_id}")


def issue(
    private_key: str,
    address: str,
    to: str,
    amount: int,
    pay_algo: float,
) -> str:
    """
    Buy `amount` units for `to` at the current stage's price.

    Args:
        to:        Recipient (must be opted in; the sender is opted in here when to == sender)
        amount:    Number of units
        pay_algo:  ALGO attached; the excess over the price is refunded to `to`
    """
    client     = get_algod()
    app_client = get_app_client(private_key)
    asset_id   = unit_asset_id(app_client)

    if to == address:
        opt_in(private_key, address, asset_id)

    payment = PaymentTxn(
        sender=address,
        sp=client.suggested_params(),
        receiver=app_client.app_addr,
        amt=int(pay_algo * MICROALGOS_PER_ALGO),
    )
    state = app_client.get_global_state()

    print(f"🪙 Issuing {amount} units to {to} (paying {pay_algo} ALGO)...")
    result = app_client.call(
        "issue",
        to=to,
        amount=amount,
        payment=TransactionWithSigner(txn=payment, signer=AccountTransactionSigner(private_key)),
        suggested_params=pooled_params(client, ISSUE_TXN_COUNT),
        accounts=[to],
        foreign_assets=[asset_id],
        foreign_apps=[state["sibling_app"], state["rewards_app"]],
        boxes=[(app_client.app_id, participant_box(to))],
    )
    print(f"✅ Issued! Tx: {result.tx_id}")
    logger.info("issued %d units to %s", amount, to)
    return result.tx_id


def claim(private_key: str, address: str, to: str, amount: int) -> None:
    client     = get_algod()
    app_client = get_app_client(private_key)
    asset_id   = unit_asset_id(app_client)
    state      = app_client.get_global_state()

    if to == address:
        opt_in(private_key, address, asset_id)

    print(f"🎁 Claiming {amount} free units for {to}...")
    result = app_client.call(
        "claim_free",
        to=to,
        amount=amount,
        suggested_params=pooled_params(client, CLAIM_TXN_COUNT),
        accounts=[to],
        foreign_assets=[asset_id],
        foreign_apps=[state["rewards_app"]],
        boxes=[(app_client.app_id, participant_box(to))],
    )
    print(f"✅ Claimed! Tx: {result.tx_id}")
    logger.info("claimed %d units for %s", amount, to)


# ─────────────────────────────────────────────
#  READ-ONLY QUERIES
# ─────────────────────────────────────────────
def _print_table(title: str, rows: dict) -> None:
    print(f"\n{'─'*50}")
    print(f"  {title}")
    print(f"{'─'*50}")
    for k, v in rows.items():
        print(f"  {k:<25} {v}")
    print(f"{'─'*50}\n")


def query_stage(private_key: str) -> dict:
    app_client = get_app_client(private_key)
    flags  = app_client.call("get_stage_flags").return_value
    supply = app_client.call("get_supply").return_value

    info = {
        "whitelist_open":      flags[0],
        "public_open":         flags[1],
        "free_pool_reserved":  flags[2],
        "paused":              flags[3],
        "total_issued":        supply[0],
        "free_pool_remaining": supply[1],
        "total_cap":           supply[2],
    }
    _print_table("STAGED DROP — STAGE & SUPPLY", info)
    return info


def query_participant(private_key: str, who: str) -> dict:
    client     = get_algod()
    app_client = get_app_client(private_key)
    state      = app_client.get_global_state()
    box        = [(app_client.app_id, participant_box(who))]
    record     = read_participant(client, app_client.app_id, who) or ParticipantRecord()

    sibling_count: Optional[int] = None
    if state["sibling_app"]:
        oracle = AlgodSiblingOracle(
            client,
            state["sibling_app"],
            sender=account.address_from_private_key(private_key),
            signer=AccountTransactionSigner(private_key),
        )
        sibling_count = oracle.issued_count(who)

    allowance = app_client.call(
        "remaining_allowance",
        who=who,
        boxes=box,
        accounts=[who],
        foreign_assets=[state["unit_asset"]],
        foreign_apps=[state["sibling_app"]],
        suggested_params=pooled_params(client, 2),
    ).return_value

    info = {
        "address":             who,
        "whitelisted":         record.is_whitelisted,
        "free_eligible":       record.is_free_eligible,
        "free_quota":          record.free_quota,
        "free_claimed":        record.free_claimed,
        "free_remaining":      record.free_remaining,
        "paid_minted":         record.paid_minted,
        "sibling_issued":      sibling_count,
        "remaining_allowance": allowance,
        "max_per_address":     DEFAULT_CONFIG.max_per_address,
    }
    _print_table("PARTICIPANT", info)
    return info


def query_royalty(private_key: str, sale_price_algo: float) -> dict:
    app_client = get_app_client(private_key)
    quote = app_client.call(
        "royalty_info",
        sale_price=int(sale_price_algo * MICROALGOS_PER_ALGO),
    ).return_value
    info = {"receiver": quote[0], "royalty_algo": quote[1] / MICROALGOS_PER_ALGO}
    _print_table("ROYALTY QUOTE", info)
    return info


def query_holders(private_key: str) -> dict:
    """Every account holding units of the drop, read from the indexer."""
    asset_id = unit_asset_id(get_app_client(private_key))
    idx      = get_indexer()
    # the app account holds the undistributed remainder
    app_address = get_application_address(config.APP_ID)
    holders  = {}
    next_page = None
    while True:
        page = idx.asset_balances(asset_id, next_page=next_page)
        for entry in page.get("balances", []):
            if entry["amount"] and entry["address"] != app_address:
                holders[entry["address"]] = entry["amount"]
        next_page = page.get("next-token")
        if not next_page:
            break
    _print_table(f"HOLDERS — Asset {asset_id}", holders)
    return holders


# ─────────────────────────────────────────────
#  CLI ENTRYPOINT
# ─────────────────────────────────────────────
def main():
    parser = argparse.ArgumentParser(
        description="Staged Drop — capped three-stage distribution CLI for Algorand",
    )
    sub = parser.add_subparsers(dest="cmd")

    # deploy
    p_dep = sub.add_parser("deploy", help="Deploy and bootstrap the drop")
    p_dep.add_argument("--rewards-app", type=int, default=config.REWARDS_APP_ID)
    p_dep.add_argument("--sibling-app", type=int, default=config.SIBLING_APP_ID)
    p_dep.add_argument("--name",        default="Staged Drop")
    p_dep.add_argument("--unit",        default="DROP")
    p_dep.add_argument("--uri",         default="")

    # stage transitions
    p_stage = sub.add_parser("stage", help="Apply a stage transition")
    p_stage.add_argument("transition", choices=sorted(STAGE_METHODS))

    # sibling
    p_sib = sub.add_parser("sibling", help="Point the drop at a sibling collection app")
    p_sib.add_argument("--app", type=int, required=True)

    # whitelist
    p_wl = sub.add_parser("whitelist", help="Add or remove whitelist entries")
    p_wl.add_argument("--add",    nargs="*", default=[])
    p_wl.add_argument("--remove", nargs="*", default=[])

    # free allocations
    p_free = sub.add_parser("allocate", help="Grant free allocations (address=quota ...)")
    p_free.add_argument("entries", nargs="+", help="ADDRESS=QUOTA")

    p_revoke = sub.add_parser("deallocate", help="Revoke free allocations")
    p_revoke.add_argument("addresses", nargs="+")

    # issue / claim
    p_issue = sub.add_parser("issue", help="Buy units at the current stage price")
    p_issue.add_argument("--to",     default=None)
    p_issue.add_argument("--amount", type=int,   required=True)
    p_issue.add_argument("--pay",    type=float, required=True, help="ALGO to attach")

    p_claim = sub.add_parser("claim", help="Claim free units")
    p_claim.add_argument("--to",     default=None)
    p_claim.add_argument("--amount", type=int, required=True)

    # funds
    sub.add_parser("withdraw", help="Withdraw collected payments to the owner")
    p_sweep = sub.add_parser("sweep", help="Sweep a foreign ASA to the owner")
    p_sweep.add_argument("--asset", type=int, required=True)

    # queries
    sub.add_parser("status", help="Stage flags and supply")
    p_part = sub.add_parser("participant", help="Participant record and allowance")
    p_part.add_argument("--address", default=None)
    p_roy = sub.add_parser("royalty", help="Royalty quote for a sale price")
    p_roy.add_argument("--price", type=float, required=True)
    sub.add_parser("holders", help="Accounts holding units, from the indexer")

    args = parser.parse_args()

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.cmd:
        parser.print_help()
        return

    private_key, address = load_account()
    print(f"\n👛 Wallet: {address}")
    print(f"   App ID: {config.APP_ID}\n")

    if args.cmd == "deploy":
        deploy(
            private_key, address,
            rewards_app=args.rewards_app, sibling_app=args.sibling_app,
            asset_name=args.name, unit_name=args.unit, uri=args.uri,
        )

    elif args.cmd == "stage":
        set_stage(private_key, args.transition)

    elif args.cmd == "sibling":
        set_sibling(private_key, args.app)

    elif args.cmd == "whitelist":
        if args.add:
            grant_whitelist(private_key, address, args.add)
        if args.remove:
            revoke_whitelist(private_key, address, args.remove)

    elif args.cmd == "allocate":
        pairs = [entry.split("=", 1) for entry in args.entries]
        grant_free_allocation(private_key, address, [a for a, _ in pairs], [int(q) for _, q in pairs])

    elif args.cmd == "deallocate":
        revoke_free_allocation(private_key, address, args.addresses)

    elif args.cmd == "issue":
        issue(private_key, address, args.to or address, args.amount, args.pay)

    elif args.cmd == "claim":
        claim(private_key, address, args.to or address, args.amount)

    elif args.cmd == "withdraw":
        withdraw(private_key)

    elif args.cmd == "sweep":
        sweep(private_key, args.asset)

    elif args.cmd == "status":
        query_stage(private_key)

    elif args.cmd == "participant":
        query_participant(private_key, args.address or address)

    elif args.cmd == "royalty":
        query_royalty(private_key, args.price)

    elif args.cmd == "holders":
        query_holders(private_key)


if __name__ == "__main__":
    main()
