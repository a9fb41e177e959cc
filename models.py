from decimal import Context, Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Bounds on input amounts. Balances built from up to 2**32 such amounts stay
# exact within MONEY_CONTEXT, including when quantized for output.
AMOUNT_MAX_DIGITS = 24
AMOUNT_DECIMAL_PLACES = 8
MONEY_CONTEXT = Context(prec=50)


class TransactionType(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"
    dispute = "dispute"
    resolve = "resolve"
    chargeback = "chargeback"


# Types that move money and are recorded in an account's history.
MONETARY_TYPES = frozenset({TransactionType.deposit, TransactionType.withdrawal})


class ErrorKind(str, Enum):
    missing_amount = "missing_amount"
    incorrect_amount = "incorrect_amount"
    insufficient_balance = "insufficient_balance"
    duplicate_transaction = "duplicate_transaction"
    account_locked = "account_locked"


class IgnoreReason(str, Enum):
    not_found = "not_found"
    wrong_state = "wrong_state"


class ProcessingStatus(str, Enum):
    applied = "applied"
    rejected = "rejected"
    ignored = "ignored"


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: TransactionType = Field(..., description="Transaction type")
    client: int = Field(..., ge=0, le=65535, description="Client identifier")
    tx: int = Field(..., ge=0, le=4294967295, description="Transaction identifier")
    amount: Optional[Decimal] = Field(
        None,
        allow_inf_nan=False,
        max_digits=AMOUNT_MAX_DIGITS,
        decimal_places=AMOUNT_DECIMAL_PLACES,
        description="Amount, only carried by deposits and withdrawals",
    )

    @field_validator('amount', mode='before')
    @classmethod
    def empty_amount_is_absent(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ProcessedTransaction(BaseModel):
    """A deposit or withdrawal kept in an account's history so it can be disputed later."""

    tx: int
    amount: Decimal
    latest_state: TransactionType


class AccountState(BaseModel):
    model_config = ConfigDict(frozen=True)

    client: int = Field(..., description="Client identifier")
    available: Decimal = Field(..., description="Funds available for withdrawal")
    held: Decimal = Field(..., description="Funds held by open disputes")
    total: Decimal = Field(..., description="Available plus held funds")
    locked: bool = Field(..., description="Whether a chargeback has frozen the account")


class ProcessingResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ProcessingStatus
    error: Optional[ErrorKind] = None
    reason: Optional[IgnoreReason] = None

    @classmethod
    def applied(cls) -> "ProcessingResult":
        return cls(status=ProcessingStatus.applied)

    @classmethod
    def rejected(cls, error: ErrorKind) -> "ProcessingResult":
        return cls(status=ProcessingStatus.rejected, error=error)

    @classmethod
    def ignored(cls, reason: IgnoreReason) -> "ProcessingResult":
        return cls(status=ProcessingStatus.ignored, reason=reason)


class ProcessingSummary(BaseModel):
    processed: int = Field(0, description="Transactions routed to an account")
    applied: int = Field(0, description="Transactions that changed account state")
    rejected: int = Field(0, description="Transactions discarded as invalid")
    ignored: int = Field(0, description="References to unknown or wrong-state transactions")

    def record(self, result: ProcessingResult) -> None:
        self.processed += 1
        if result.status == ProcessingStatus.applied:
            self.applied += 1
        elif result.status == ProcessingStatus.rejected:
            self.rejected += 1
        else:
            self.ignored += 1
