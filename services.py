from decimal import Decimal, localcontext
from typing import Dict, Optional

import structlog

from exceptions import (
    AccountLockedError,
    DuplicateTransactionError,
    IncorrectAmountError,
    InsufficientBalanceError,
    MissingAmountError,
)
from models import (
    MONEY_CONTEXT,
    MONETARY_TYPES,
    AccountState,
    IgnoreReason,
    ProcessedTransaction,
    ProcessingResult,
    Transaction,
    TransactionType,
)

logger = structlog.get_logger()


class AccountLedger:
    """State of a single client account and the transitions that change it.

    ``balance`` is the total of the account, ``held`` the part frozen by open
    disputes. Every accepted deposit and withdrawal is kept in ``history`` so a
    later dispute, resolve or chargeback can refer to it by transaction id.
    """

    def __init__(self, client_id: int, reject_when_locked: bool = False):
        self.client_id = client_id
        self.balance = Decimal("0")
        self.held = Decimal("0")
        self.locked = False
        self.history: Dict[int, ProcessedTransaction] = {}
        self.reject_when_locked = reject_when_locked

    @property
    def available(self) -> Decimal:
        return self.balance - self.held

    def state(self) -> AccountState:
        with localcontext(MONEY_CONTEXT):
            return AccountState(
                client=self.client_id,
                available=self.available,
                held=self.held,
                total=self.balance,
                locked=self.locked,
            )

    def process(self, transaction: Transaction) -> ProcessingResult:
        """Apply one transaction to the account.

        Returns an applied result, or an ignored one when a dispute, resolve
        or chargeback refers to a transaction that is unknown to this account
        or not in a state it can move from.

        Raises:
            TransactionError: the transaction is invalid and was not applied.
        """
        with localcontext(MONEY_CONTEXT):
            return self._dispatch(transaction)

    def _dispatch(self, transaction: Transaction) -> ProcessingResult:
        if transaction.type == TransactionType.deposit:
            return self._process_deposit(transaction)
        elif transaction.type == TransactionType.withdrawal:
            return self._process_withdrawal(transaction)
        elif transaction.type == TransactionType.dispute:
            return self._process_dispute(transaction)
        elif transaction.type == TransactionType.resolve:
            return self._process_resolve(transaction)
        else:
            return self._process_chargeback(transaction)

    def _validate_monetary(self, transaction: Transaction) -> Decimal:
        if self.locked and self.reject_when_locked:
            raise AccountLockedError(f"Account {self.client_id} is locked")

        amount = transaction.amount
        if amount is None:
            raise MissingAmountError(f"{transaction.type.value} tx {transaction.tx} has no amount")
        if amount <= 0:
            raise IncorrectAmountError(
                f"{transaction.type.value} tx {transaction.tx} has non-positive amount {amount}"
            )

        if transaction.tx in self.history:
            raise DuplicateTransactionError(
                f"{transaction.type.value} tx {transaction.tx} was already processed"
            )
        return amount

    def _record(self, transaction: Transaction, amount: Decimal) -> None:
        self.history[transaction.tx] = ProcessedTransaction(
            tx=transaction.tx,
            amount=amount,
            latest_state=transaction.type,
        )

    def _process_deposit(self, transaction: Transaction) -> ProcessingResult:
        amount = self._validate_monetary(transaction)

        self.balance += amount
        self._record(transaction, amount)

        logger.debug(
            "Deposit processed",
            account_id=self.client_id,
            tx=transaction.tx,
            amount=str(amount),
            new_balance=str(self.balance),
        )
        return ProcessingResult.applied()

    def _process_withdrawal(self, transaction: Transaction) -> ProcessingResult:
        amount = self._validate_monetary(transaction)

        if self.available < amount:
            raise InsufficientBalanceError(
                f"withdrawal tx {transaction.tx} of {amount} exceeds available {self.available}"
            )

        self.balance -= amount
        self._record(transaction, amount)

        logger.debug(
            "Withdrawal processed",
            account_id=self.client_id,
            tx=transaction.tx,
            amount=str(amount),
            new_balance=str(self.balance),
        )
        return ProcessingResult.applied()

    def _check_reference(
        self, transaction: Transaction, *allowed_states: TransactionType
    ) -> Optional[IgnoreReason]:
        entry = self.history.get(transaction.tx)
        if entry is None:
            return IgnoreReason.not_found
        if entry.latest_state not in allowed_states:
            return IgnoreReason.wrong_state
        return None

    def _ignore(self, transaction: Transaction, reason: IgnoreReason) -> ProcessingResult:
        entry = self.history.get(transaction.tx)
        logger.warning(
            "Transaction reference ignored",
            account_id=self.client_id,
            tx=transaction.tx,
            type=transaction.type.value,
            reason=reason.value,
            current_state=entry.latest_state.value if entry else None,
        )
        return ProcessingResult.ignored(reason)

    def _process_dispute(self, transaction: Transaction) -> ProcessingResult:
        reason = self._check_reference(transaction, *MONETARY_TYPES)
        if reason is not None:
            return self._ignore(transaction, reason)

        entry = self.history[transaction.tx]
        entry.latest_state = TransactionType.dispute
        self.held += entry.amount
        return ProcessingResult.applied()

    def _process_resolve(self, transaction: Transaction) -> ProcessingResult:
        reason = self._check_reference(transaction, TransactionType.dispute)
        if reason is not None:
            return self._ignore(transaction, reason)

        entry = self.history[transaction.tx]
        entry.latest_state = TransactionType.resolve
        self.held -= entry.amount
        return ProcessingResult.applied()

    def _process_chargeback(self, transaction: Transaction) -> ProcessingResult:
        reason = self._check_reference(transaction, TransactionType.dispute)
        if reason is not None:
            return self._ignore(transaction, reason)

        entry = self.history[transaction.tx]
        entry.latest_state = TransactionType.chargeback
        self.held -= entry.amount
        self.balance -= entry.amount
        self.locked = True

        logger.info(
            "Chargeback locked account",
            account_id=self.client_id,
            tx=transaction.tx,
            amount=str(entry.amount),
        )
        return ProcessingResult.applied()
