from typing import Optional

from models import ErrorKind


class TransactionError(Exception):
    """A transaction the ledger refuses to apply. The run carries on with the next record."""

    error_kind: ErrorKind

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class MissingAmountError(TransactionError):
    error_kind = ErrorKind.missing_amount


class IncorrectAmountError(TransactionError):
    error_kind = ErrorKind.incorrect_amount


class InsufficientBalanceError(TransactionError):
    error_kind = ErrorKind.insufficient_balance


class DuplicateTransactionError(TransactionError):
    error_kind = ErrorKind.duplicate_transaction


class AccountLockedError(TransactionError):
    error_kind = ErrorKind.account_locked


class MalformedRecordError(Exception):
    """An input record that cannot be read as a transaction. Aborts the run."""

    def __init__(self, detail: str, line_number: Optional[int] = None):
        message = detail if line_number is None else f"line {line_number}: {detail}"
        super().__init__(message)
        self.detail = detail
        self.line_number = line_number
