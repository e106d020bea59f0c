"""
╔══════════════════════════════════════════════════════════════════╗
║          STAGED DROP — capped three-stage unit distribution      ║
║          Smart Contract: staged_drop/contract.py                 ║
║                                                                  ║
║  Features:                                                       ║
║  • Whitelist / public / free-claim stages                        ║
║  • Per-address cap shared with a sibling collection              ║
║  • Reserved free pool with quota-based claims                    ║
║  • Overpayment refund in the same atomic group                   ║
║  • Reward-share report to an external ledger per issuance        ║
╚══════════════════════════════════════════════════════════════════╝
"""

from pyteal import *
from beaker import *

from . import errors
from .config import ADD_SHARE_SIGNATURE, BASIS_POINTS, DEFAULT_CONFIG, ISSUED_COUNT_SIGNATURE
from .registry import FLAG_FREE_ELIGIBLE, FLAG_WHITELISTED, RECORD_SIZE


# ─────────────────────────────────────────────
#  CONSTANTS
# ─────────────────────────────────────────────
TOTAL_CAP       = Int(DEFAULT_CONFIG.total_cap)
FREE_POOL_SIZE  = Int(DEFAULT_CONFIG.free_pool_size)
MAX_PER_ADDRESS = Int(DEFAULT_CONFIG.max_per_address)
WHITELIST_PRICE = Int(DEFAULT_CONFIG.whitelist_price)   # microALGO per unit
PUBLIC_PRICE    = Int(DEFAULT_CONFIG.public_price)      # microALGO per unit
MAX_BPS         = Int(BASIS_POINTS)

ARC4_RETURN_PREFIX  = Int(4)


# ─────────────────────────────────────────────
#  PARTICIPANT RECORD  (stored in Box)
# ─────────────────────────────────────────────
# Box key  = Concat(Bytes("p"), address)
# Box value (32 bytes):
#   [0:8]   flags         uint64  (bit flags below)
#   [8:16]  free_quota    uint64
#   [16:24] free_claimed  uint64
#   [24:32] paid_minted   uint64
#
# FLAGS bit positions:
#   0 = whitelisted
#   1 = free_eligible

PARTICIPANT_PREFIX = "p"
RECORD_BYTES       = Int(RECORD_SIZE)
OFF_FLAGS          = Int(0)
OFF_QUOTA          = Int(8)
OFF_CLAIMED        = Int(16)
OFF_MINTED         = Int(24)

FLAG_WL   = Int(FLAG_WHITELISTED)
FLAG_FREE = Int(FLAG_FREE_ELIGIBLE)


# ══════════════════════════════════════════════════════════════
#  GLOBAL STATE
# ══════════════════════════════════════════════════════════════

class StagedDropState:
    # ── Administration ──
    owner               = GlobalStateValue(TealType.bytes,  descr="Privileged administrator address")
    paused              = GlobalStateValue(TealType.uint64, descr="1 = participant operations suspended")

    # ── Linked applications / assets ──
    unit_asset          = GlobalStateValue(TealType.uint64, descr="ASA holding every unit of the collection")
    sibling_app         = GlobalStateValue(TealType.uint64, descr="Sibling collection app answering issued_count")
    rewards_app         = GlobalStateValue(TealType.uint64, descr="Reward ledger app receiving add_share")

    # ── Supply ──
    total_issued        = GlobalStateValue(TealType.uint64, descr="Units issued so far (paid + claimed)")
    free_pool_remaining = GlobalStateValue(TealType.uint64, descr="Free-pool units not yet drawn")

    # ── Stage flags ──
    whitelist_open      = GlobalStateValue(TealType.uint64, descr="1 = whitelist sale open")
    public_open         = GlobalStateValue(TealType.uint64, descr="1 = public sale open")
    free_pool_reserved  = GlobalStateValue(TealType.uint64, descr="1 = free pool held back from paid supply")

    # ── Royalty / metadata ──
    royalty_receiver    = GlobalStateValue(TealType.bytes,  descr="Default royalty receiver")
    royalty_bps         = GlobalStateValue(TealType.uint64, descr="Default royalty in basis points")
    metadata_uri        = GlobalStateValue(TealType.bytes,  descr="Metadata URI for the unit asset")


class StageView(abi.NamedTuple):
    whitelist_open: abi.Field[abi.Bool]
    public_open: abi.Field[abi.Bool]
    free_pool_reserved: abi.Field[abi.Bool]
    paused: abi.Field[abi.Bool]


class SupplyView(abi.NamedTuple):
    total_issued: abi.Field[abi.Uint64]
    free_pool_remaining: abi.Field[abi.Uint64]
    total_cap: abi.Field[abi.Uint64]


class ParticipantView(abi.NamedTuple):
    is_whitelisted: abi.Field[abi.Bool]
    is_free_eligible: abi.Field[abi.Bool]
    free_quota: abi.Field[abi.Uint64]
    free_claimed: abi.Field[abi.Uint64]
    paid_minted: abi.Field[abi.Uint64]


class RoyaltyQuote(abi.NamedTuple):
    receiver: abi.Field[abi.Address]
    amount: abi.Field[abi.Uint64]


app = Application(
    "StagedDrop",
    descr="Capped three-stage unit distribution with sibling-aware caps and reward shares",
    state=StagedDropState(),
)


# ══════════════════════════════════════════════════════════════
#  LIFECYCLE
# ══════════════════════════════════════════════════════════════

@app.create
def create(rewards_app: abi.Uint64, sibling_app: abi.Uint64) -> Expr:
    """Deploy the drop. The creator becomes owner and default royalty receiver."""
    return Seq(
        app.state.owner.set(Txn.sender()),
        app.state.paused.set(Int(0)),
        app.state.unit_asset.set(Int(0)),
        app.state.sibling_app.set(sibling_app.get()),
        app.state.rewards_app.set(rewards_app.get()),
        app.state.total_issued.set(Int(0)),
        app.state.free_pool_remaining.set(FREE_POOL_SIZE),
        app.state.whitelist_open.set(Int(0)),
        app.state.public_open.set(Int(0)),
        app.state.free_pool_reserved.set(Int(1)),
        app.state.royalty_receiver.set(Txn.sender()),
        app.state.royalty_bps.set(Int(0)),
        app.state.metadata_uri.set(Bytes("")),
    )


# ─────────────────────────────────────────────
#  INTERNAL HELPERS
# ─────────────────────────────────────────────
def only_owner() -> Expr:
    return Assert(Txn.sender() == app.state.owner.get(), comment=errors.Unauthorized.message)


def when_not_paused() -> Expr:
    return Assert(app.state.paused.get() == Int(0), comment=errors.OperationSuspended.message)


def participant_key(who: Expr) -> Expr:
    return Concat(Bytes(PARTICIPANT_PREFIX), who)


@Subroutine(TealType.uint64)
def record_field(who: Expr, offset: Expr) -> Expr:
    """Read one uint64 field of a participant box; a missing box reads as 0."""
    rec = BoxGet(participant_key(who))
    return Seq(
        rec,
        If(rec.hasValue(), ExtractUint64(rec.value(), offset), Int(0)),
    )


@Subroutine(TealType.none)
def write_field(who: Expr, offset: Expr, value: Expr) -> Expr:
    """Write one uint64 field, creating a zeroed box on first touch."""
    return Seq(
        Pop(BoxCreate(participant_key(who), RECORD_BYTES)),
        BoxReplace(participant_key(who), offset, Itob(value)),
    )


def has_flag(who: Expr, flag: Expr) -> Expr:
    return BitwiseAnd(record_field(who, OFF_FLAGS), flag) != Int(0)


@Subroutine(TealType.uint64)
def ledger_balance(who: Expr) -> Expr:
    held = AssetHolding.balance(who, app.state.unit_asset.get())
    return Seq(held, If(held.hasValue(), held.value(), Int(0)))


@Subroutine(TealType.uint64)
def sibling_issued(who: Expr) -> Expr:
    """
    Ask the sibling collection how many units it issued to `who`.

    Any failure of the sibling call fails the whole group.
    """
    return Seq(
        Assert(app.state.sibling_app.get() != Int(0), comment="sibling collection not set"),
        InnerTxnBuilder.Begin(),
        InnerTxnBuilder.SetFields({
            TxnField.type_enum:         TxnType.ApplicationCall,
            TxnField.application_id:    app.state.sibling_app.get(),
            TxnField.on_completion:     OnComplete.NoOp,
            TxnField.application_args:  [MethodSignature(ISSUED_COUNT_SIGNATURE), who],
            TxnField.fee:               Int(0),
        }),
        InnerTxnBuilder.Submit(),
        Btoi(Suffix(InnerTxn.last_log(), ARC4_RETURN_PREFIX)),
    )


@Subroutine(TealType.none)
def report_shares(who: Expr, amount: Expr) -> Expr:
    """Append `amount` shares for `who` on the reward ledger."""
    return Seq(
        InnerTxnBuilder.Begin(),
        InnerTxnBuilder.SetFields({
            TxnField.type_enum:         TxnType.ApplicationCall,
            TxnField.application_id:    app.state.rewards_app.get(),
            TxnField.on_completion:     OnComplete.NoOp,
            TxnField.application_args:  [MethodSignature(ADD_SHARE_SIGNATURE), who, Itob(amount)],
            TxnField.fee:               Int(0),
        }),
        InnerTxnBuilder.Submit(),
    )


@Subroutine(TealType.none)
def pay(receiver: Expr, amount: Expr) -> Expr:
    return Seq(
        InnerTxnBuilder.Begin(),
        InnerTxnBuilder.SetFields({
            TxnField.type_enum: TxnType.Payment,
            TxnField.receiver:  receiver,
            TxnField.amount:    amount,
            TxnField.fee:       Int(0),
        }),
        InnerTxnBuilder.Submit(),
    )


@Subroutine(TealType.none)
def deliver_units(receiver: Expr, amount: Expr) -> Expr:
    return Seq(
        InnerTxnBuilder.Begin(),
        InnerTxnBuilder.SetFields({
            TxnField.type_enum:      TxnType.AssetTransfer,
            TxnField.xfer_asset:     app.state.unit_asset.get(),
            TxnField.asset_receiver: receiver,
            TxnField.asset_amount:   amount,
            TxnField.fee:            Int(0),
        }),
        InnerTxnBuilder.Submit(),
    )


@Subroutine(TealType.none)
def settle_payment(who: Expr, due: Expr, paid: Expr) -> Expr:
    """Require `paid >= due` and send the excess back to `who`."""
    return Seq(
        Assert(paid >= due, comment=errors.InsufficientPayment.message),
        If(paid > due).Then(pay(who, paid - due)),
    )


def check_paid_ceiling() -> Expr:
    return Assert(
        app.state.total_issued.get() <= TOTAL_CAP - app.state.free_pool_remaining.get(),
        comment=errors.SupplyExhausted.message,
    )


@app.external
def bootstrap(
    seed: abi.PaymentTransaction,
    asset_name: abi.String,
    unit_name: abi.String,
    *,
    output: abi.Uint64,
) -> Expr:
    """
    Create the unit ASA (total = TOTAL_CAP, 0 decimals) held by the app.

    Args:
        seed:        Payment funding the app's minimum balance
        asset_name:  ASA name
        unit_name:   ASA unit name (max 8 chars)

    Returns:
        The unit ASA ID
    """
    return Seq(
        only_owner(),
        Assert(app.state.unit_asset.get() == Int(0), comment="already bootstrapped"),
        Assert(seed.get().receiver() == Global.current_application_address(), comment="seed must fund the drop"),
        InnerTxnBuilder.Begin(),
        InnerTxnBuilder.SetFields({
            TxnField.type_enum:                   TxnType.AssetConfig,
            TxnField.config_asset_total:          TOTAL_CAP,
            TxnField.config_asset_decimals:       Int(0),
            TxnField.config_asset_default_frozen: Int(0),
            TxnField.config_asset_name:           asset_name.get(),
            TxnField.config_asset_unit_name:      unit_name.get(),
            TxnField.config_asset_url:            app.state.metadata_uri.get(),
            TxnField.config_asset_manager:        Global.current_application_address(),
            TxnField.config_asset_reserve:        Global.current_application_address(),
            TxnField.fee:                         Int(0),
        }),
        InnerTxnBuilder.Submit(),
        app.state.unit_asset.set(InnerTxn.created_asset_id()),
        output.set(app.state.unit_asset.get()),
    )


# ══════════════════════════════════════════════════════════════
#  ISSUANCE PATHS
# ══════════════════════════════════════════════════════════════

@Subroutine(TealType.none)
def issue_whitelist(who: Expr, amount: Expr, paid: Expr) -> Expr:
    """
    Whitelist sale while the free pool is reserved.

    Effective holding = ledger balance net of free claims (floored at 0)
    plus the sibling collection's issuance; it must stay within
    MAX_PER_ADDRESS after this call.
    """
    sibling = ScratchVar(TealType.uint64)
    held    = ScratchVar(TealType.uint64)
    claimed = ScratchVar(TealType.uint64)

    return Seq(
        Assert(has_flag(who, FLAG_WL), comment=errors.NotWhitelisted.message),
        sibling.store(sibling_issued(who)),
        held.store(ledger_balance(who)),
        claimed.store(record_field(who, OFF_CLAIMED)),
        held.store(
            If(held.load() > claimed.load(), held.load() - claimed.load(), Int(0))
            + sibling.load()
        ),
        Assert(held.load() + amount <= MAX_PER_ADDRESS, comment=errors.PerAddressCapExceeded.message),
        Assert(MAX_PER_ADDRESS - sibling.load() >= amount, comment=errors.PerAddressCapExceeded.message),

        settle_payment(who, amount * WHITELIST_PRICE, paid),

        app.state.total_issued.set(app.state.total_issued.get() + amount),
        check_paid_ceiling(),

        deliver_units(who, amount),
        write_field(who, OFF_MINTED, record_field(who, OFF_MINTED) + amount),
        report_shares(who, amount),
    )


@Subroutine(TealType.none)
def issue_public_reserved(who: Expr, amount: Expr, paid: Expr) -> Expr:
    """Public sale while the free pool is reserved. No per-address cap, no paid_minted update."""
    return Seq(
        settle_payment(who, amount * PUBLIC_PRICE, paid),
        app.state.total_issued.set(app.state.total_issued.get() + amount),
        check_paid_ceiling(),
        deliver_units(who, amount),
        report_shares(who, amount),
    )


@Subroutine(TealType.none)
def issue_public_unreserved(who: Expr, amount: Expr, paid: Expr) -> Expr:
    """
    Public sale after the free pool was released.

    Paid units are still drawn from the free-pool counter, which must be
    non-zero.
    """
    return Seq(
        settle_payment(who, amount * PUBLIC_PRICE, paid),
        Assert(app.state.free_pool_remaining.get() > Int(0), comment=errors.FreePoolExhausted.message),
        Assert(amount <= app.state.free_pool_remaining.get(), comment=errors.FreePoolExhausted.message),
        app.state.total_issued.set(app.state.total_issued.get() + amount),
        app.state.free_pool_remaining.set(app.state.free_pool_remaining.get() - amount),
        Assert(app.state.total_issued.get() <= TOTAL_CAP, comment=errors.SupplyExhausted.message),
        deliver_units(who, amount),
        report_shares(who, amount),
    )


# ══════════════════════════════════════════════════════════════
#  PARTICIPANT OPERATIONS
# ══════════════════════════════════════════════════════════════

@app.external
def issue(
    to: abi.Address,
    amount: abi.Uint64,
    payment: abi.PaymentTransaction,
) -> Expr:
    """
    Issue paid units on the path selected by the current stage.

    The caller must:
    1. Have `to` opted in to the unit ASA.
    2. Group a payment to the app of at least amount × stage price.

    Any overpayment is refunded to `to` in the same group.
    """
    wl       = app.state.whitelist_open.get()
    pub      = app.state.public_open.get()
    reserved = app.state.free_pool_reserved.get()
    paid     = payment.get().amount()

    return Seq(
        when_not_paused(),
        Assert(amount.get() > Int(0), comment=errors.InvalidAmount.message),
        Assert(payment.get().receiver() == Global.current_application_address(), comment="payment must go to the drop"),
        If(And(wl, Not(pub), reserved)).Then(
            issue_whitelist(to.get(), amount.get(), paid)
        ).ElseIf(And(pub, Not(wl), reserved)).Then(
            issue_public_reserved(to.get(), amount.get(), paid)
        ).ElseIf(And(pub, Not(wl), Not(reserved))).Then(
            issue_public_unreserved(to.get(), amount.get(), paid)
        ).Else(
            Assert(Int(0), comment=errors.StageClosed.message)
        ),
    )


@app.external
def claim_free(to: abi.Address, amount: abi.Uint64) -> Expr:
    """
    Claim free units from the reserved pool.

    Only `amount <= free_quota` is checked before issuing; the claimed
    total is checked against the quota afterwards and the group fails if
    it was exceeded.
    """
    who = to.get()

    return Seq(
        when_not_paused(),
        Assert(amount.get() > Int(0), comment=errors.InvalidAmount.message),
        Assert(app.state.free_pool_reserved.get() == Int(1), comment=errors.ClaimUnavailable.message),
        Assert(has_flag(who, FLAG_FREE), comment=errors.NotFreeEligible.message),
        Assert(amount.get() <= record_field(who, OFF_QUOTA), comment=errors.FreeQuotaExceeded.message),
        Assert(app.state.free_pool_remaining.get() > Int(0), comment=errors.FreePoolExhausted.message),
        Assert(amount.get() <= app.state.free_pool_remaining.get(), comment=errors.FreePoolExhausted.message),

        deliver_units(who, amount.get()),
        app.state.free_pool_remaining.set(app.state.free_pool_remaining.get() - amount.get()),
        app.state.total_issued.set(app.state.total_issued.get() + amount.get()),
        write_field(who, OFF_CLAIMED, record_field(who, OFF_CLAIMED) + amount.get()),

        Assert(
            record_field(who, OFF_CLAIMED) <= record_field(who, OFF_QUOTA),
            comment=errors.FreeQuotaExceeded.message,
        ),
        report_shares(who, amount.get()),
    )


# ══════════════════════════════════════════════════════════════
#  ADMINISTRATION: STAGES
# ══════════════════════════════════════════════════════════════

@app.external
def open_whitelist_stage() -> Expr:
    return Seq(
        only_owner(),
        app.state.whitelist_open.set(Int(1)),
        app.state.public_open.set(Int(0)),
    )


@app.external
def open_public_stage() -> Expr:
    return Seq(
        only_owner(),
        app.state.whitelist_open.set(Int(0)),
        app.state.public_open.set(Int(1)),
    )


@app.external
def close_stages() -> Expr:
    return Seq(
        only_owner(),
        app.state.whitelist_open.set(Int(0)),
        app.state.public_open.set(Int(0)),
    )


@app.external
def reserve_free_pool() -> Expr:
    return Seq(only_owner(), app.state.free_pool_reserved.set(Int(1)))


@app.external
def release_free_pool() -> Expr:
    return Seq(only_owner(), app.state.free_pool_reserved.set(Int(0)))


@app.external
def set_sibling_collection(sibling_app: abi.Uint64) -> Expr:
    return Seq(only_owner(), app.state.sibling_app.set(sibling_app.get()))


@app.external
def pause() -> Expr:
    return Seq(only_owner(), app.state.paused.set(Int(1)))


@app.external
def unpause() -> Expr:
    return Seq(only_owner(), app.state.paused.set(Int(0)))


# ══════════════════════════════════════════════════════════════
#  ADMINISTRATION: ALLOCATION REGISTRY
# ══════════════════════════════════════════════════════════════

@app.external
def grant_free_allocation(
    addresses: abi.DynamicArray[abi.Address],
    quotas: abi.DynamicArray[abi.Uint64],
) -> Expr:
    """
    Mark each address free-eligible with the paired quota (overwrites,
    never below what was already claimed).

    Both arrays must have the same length; every participant box touched
    must be in the call's box references.
    """
    i     = ScratchVar(TealType.uint64)
    addr  = abi.Address()
    quota = abi.Uint64()

    return Seq(
        only_owner(),
        Assert(addresses.length() == quotas.length(), comment=errors.BatchLengthMismatch.message),
        For(i.store(Int(0)), i.load() < addresses.length(), i.store(i.load() + Int(1))).Do(
            Seq(
                addresses[i.load()].store_into(addr),
                quotas[i.load()].store_into(quota),
                write_field(addr.get(), OFF_FLAGS, BitwiseOr(record_field(addr.get(), OFF_FLAGS), FLAG_FREE)),
                write_field(
                    addr.get(),
                    OFF_QUOTA,
                    If(quota.get() < record_field(addr.get(), OFF_CLAIMED))
                    .Then(record_field(addr.get(), OFF_CLAIMED))
                    .Else(quota.get()),
                ),
            )
        ),
    )


@app.external
def revoke_free_allocation(addresses: abi.DynamicArray[abi.Address]) -> Expr:
    """Clear eligibility; the quota drops to what was already claimed."""
    i    = ScratchVar(TealType.uint64)
    addr = abi.Address()

    return Seq(
        only_owner(),
        For(i.store(Int(0)), i.load() < addresses.length(), i.store(i.load() + Int(1))).Do(
            Seq(
                addresses[i.load()].store_into(addr),
                write_field(
                    addr.get(), OFF_FLAGS,
                    BitwiseAnd(record_field(addr.get(), OFF_FLAGS), BitwiseNot(FLAG_FREE)),
                ),
                write_field(addr.get(), OFF_QUOTA, record_field(addr.get(), OFF_CLAIMED)),
            )
        ),
    )


@app.external
def grant_whitelist(addresses: abi.DynamicArray[abi.Address]) -> Expr:
    i    = ScratchVar(TealType.uint64)
    addr = abi.Address()

    return Seq(
        only_owner(),
        For(i.store(Int(0)), i.load() < addresses.length(), i.store(i.load() + Int(1))).Do(
            Seq(
                addresses[i.load()].store_into(addr),
                write_field(addr.get(), OFF_FLAGS, BitwiseOr(record_field(addr.get(), OFF_FLAGS), FLAG_WL)),
            )
        ),
    )


@app.external
def revoke_whitelist(addresses: abi.DynamicArray[abi.Address]) -> Expr:
    """Clear the whitelist flag. Units already issued are not touched."""
    i    = ScratchVar(TealType.uint64)
    addr = abi.Address()

    return Seq(
        only_owner(),
        For(i.store(Int(0)), i.load() < addresses.length(), i.store(i.load() + Int(1))).Do(
            Seq(
                addresses[i.load()].store_into(addr),
                write_field(
                    addr.get(), OFF_FLAGS,
                    BitwiseAnd(record_field(addr.get(), OFF_FLAGS), BitwiseNot(FLAG_WL)),
                ),
            )
        ),
    )


# ══════════════════════════════════════════════════════════════
#  ADMINISTRATION: FUNDS, ROYALTY, METADATA
# ══════════════════════════════════════════════════════════════

@app.external
def withdraw(*, output: abi.Uint64) -> Expr:
    """Send everything above the app's minimum balance to the owner."""
    app_addr = Global.current_application_address()

    return Seq(
        only_owner(),
        output.set(Balance(app_addr) - MinBalance(app_addr)),
        If(output.get() > Int(0)).Then(pay(app.state.owner.get(), output.get())),
    )


@app.external
def sweep_foreign_tokens(asset: abi.Asset, *, output: abi.Uint64) -> Expr:
    """
    Transfer the app's whole balance of a foreign ASA to the owner.

    The owner must be opted in to that ASA.
    """
    held = AssetHolding.balance(Global.current_application_address(), asset.asset_id())

    return Seq(
        only_owner(),
        Assert(asset.asset_id() != app.state.unit_asset.get(), comment="cannot sweep the drop's own units"),
        held,
        Assert(held.hasValue(), comment="app is not opted in to that asset"),
        output.set(held.value()),
        If(output.get() > Int(0)).Then(
            Seq(
                InnerTxnBuilder.Begin(),
                InnerTxnBuilder.SetFields({
                    TxnField.type_enum:      TxnType.AssetTransfer,
                    TxnField.xfer_asset:     asset.asset_id(),
                    TxnField.asset_receiver: app.state.owner.get(),
                    TxnField.asset_amount:   output.get(),
                    TxnField.fee:            Int(0),
                }),
                InnerTxnBuilder.Submit(),
            )
        ),
    )


@app.external
def set_default_royalty(receiver: abi.Address, bps: abi.Uint64) -> Expr:
    return Seq(
        only_owner(),
        Assert(bps.get() <= MAX_BPS, comment=errors.InvalidAmount.message),
        app.state.royalty_receiver.set(receiver.get()),
        app.state.royalty_bps.set(bps.get()),
    )


@app.external
def set_uri(uri: abi.String) -> Expr:
    return Seq(only_owner(), app.state.metadata_uri.set(uri.get()))


@app.external
def transfer_ownership(new_owner: abi.Address) -> Expr:
    return Seq(only_owner(), app.state.owner.set(new_owner.get()))


# ══════════════════════════════════════════════════════════════
#  READ-ONLY QUERIES
# ══════════════════════════════════════════════════════════════

@app.external(read_only=True)
def get_stage_flags(*, output: StageView) -> Expr:
    wl       = abi.Bool()
    pub      = abi.Bool()
    reserved = abi.Bool()
    paused   = abi.Bool()

    return Seq(
        wl.set(app.state.whitelist_open.get()),
        pub.set(app.state.public_open.get()),
        reserved.set(app.state.free_pool_reserved.get()),
        paused.set(app.state.paused.get()),
        output.set(wl, pub, reserved, paused),
    )


@app.external(read_only=True)
def get_supply(*, output: SupplyView) -> Expr:
    issued    = abi.Uint64()
    remaining = abi.Uint64()
    cap       = abi.Uint64()

    return Seq(
        issued.set(app.state.total_issued.get()),
        remaining.set(app.state.free_pool_remaining.get()),
        cap.set(TOTAL_CAP),
        output.set(issued, remaining, cap),
    )


@app.external(read_only=True)
def get_participant(who: abi.Address, *, output: ParticipantView) -> Expr:
    wl      = abi.Bool()
    free    = abi.Bool()
    quota   = abi.Uint64()
    claimed = abi.Uint64()
    minted  = abi.Uint64()

    return Seq(
        wl.set(has_flag(who.get(), FLAG_WL)),
        free.set(has_flag(who.get(), FLAG_FREE)),
        quota.set(record_field(who.get(), OFF_QUOTA)),
        claimed.set(record_field(who.get(), OFF_CLAIMED)),
        minted.set(record_field(who.get(), OFF_MINTED)),
        output.set(wl, free, quota, claimed, minted),
    )


@app.external(read_only=True)
def remaining_allowance(who: abi.Address, *, output: abi.Uint64) -> Expr:
    """MAX_PER_ADDRESS + claimed − sibling issued − balance, floored at 0."""
    allowance = ScratchVar(TealType.uint64)
    used      = ScratchVar(TealType.uint64)

    return Seq(
        allowance.store(MAX_PER_ADDRESS + record_field(who.get(), OFF_CLAIMED)),
        used.store(sibling_issued(who.get()) + ledger_balance(who.get())),
        output.set(If(allowance.load() > used.load(), allowance.load() - used.load(), Int(0))),
    )


@app.external(read_only=True)
def royalty_info(sale_price: abi.Uint64, *, output: RoyaltyQuote) -> Expr:
    receiver = abi.Address()
    amount   = abi.Uint64()

    return Seq(
        receiver.set(app.state.royalty_receiver.get()),
        amount.set(sale_price.get() * app.state.royalty_bps.get() / MAX_BPS),
        output.set(receiver, amount),
    )


@app.external(read_only=True)
def get_uri(*, output: abi.String) -> Expr:
    return output.set(app.state.metadata_uri.get())


# ══════════════════════════════════════════════════════════════
#  ENTRY POINT
# ══════════════════════════════════════════════════════════════

if __name__ == "__main__":
    spec = app.build()
    spec.export("./artifacts")
    print()
    print("✓ Staged Drop compiled → ./artifacts/")
    print()
    print("  ✦ issue()              — whitelist / public sale with refund")
    print("  ✦ claim_free()         — quota-based free claim")
    print("  ✦ grant_*/revoke_*     — allocation registry batches")
    print("  ✦ remaining_allowance() — sibling-aware per-address allowance")
    print()
