"""Errors raised by the drop engine.

Every error carries the revert text the on-chain application uses in its
``Assert(..., comment=...)`` for the same condition.
"""


class DropError(Exception):
    """Base error for staged drop operations."""

    message = "drop operation rejected"

    def __init__(self, detail=None):
        self.detail = detail
        super().__init__(f"{self.message}: {detail}" if detail else self.message)


# ── eligibility ──

class EligibilityError(DropError):
    """The caller or recipient may not use this path right now."""

    message = "not eligible"


class NotWhitelisted(EligibilityError):
    message = "recipient is not whitelisted"


class NotFreeEligible(EligibilityError):
    message = "recipient has no free allocation"


class ClaimUnavailable(EligibilityError):
    """Raised when claiming while the free pool is not reserved."""

    message = "free claims are not available"


class StageClosed(EligibilityError):
    message = "no distribution stage is open"


# ── limits ──

class LimitError(DropError):
    message = "limit exceeded"


class PerAddressCapExceeded(LimitError):
    message = "per-address cap exceeded"


class FreeQuotaExceeded(LimitError):
    message = "free quota exceeded"


class SupplyExhausted(LimitError):
    message = "supply exhausted"


class FreePoolExhausted(LimitError):
    message = "free pool exhausted"


# ── payment ──

class PaymentError(DropError):
    message = "payment rejected"


class InsufficientPayment(PaymentError):
    message = "insufficient payment"


class RefundFailed(PaymentError):
    """Raised when returning an overpayment fails; the whole call is undone."""

    message = "refund transfer failed"


# ── structural ──

class StructuralError(DropError):
    message = "malformed request"


class BatchLengthMismatch(StructuralError):
    message = "batch lengths differ"


class InvalidAmount(StructuralError):
    message = "invalid amount"


# ── access / execution ──

class Unauthorized(DropError):
    message = "caller is not the owner"


class OperationSuspended(DropError):
    message = "operations are paused"


class ReentrantCall(DropError):
    message = "reentrant call"


class SiblingQueryFailed(DropError):
    """The sibling collection could not answer ``issued_count``."""

    message = "sibling query failed"
