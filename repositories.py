from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import structlog

from config import Settings
from exceptions import TransactionError
from models import AccountState, ProcessingResult, ProcessingSummary, Transaction
from services import AccountLedger

logger = structlog.get_logger()


class AccountRepository(ABC):
    """Owns the accounts of one run and routes transactions to them in arrival order."""

    def __init__(self, reject_locked_account_transactions: bool = False):
        self.reject_locked_account_transactions = reject_locked_account_transactions
        self.stats = ProcessingSummary()

    @abstractmethod
    def get_account(self, client_id: int) -> Optional[AccountLedger]:
        """Get account ledger. Returns None if the client has not been seen."""
        pass

    @abstractmethod
    def add_account(self, account: AccountLedger) -> None:
        """Store a newly created account ledger."""
        pass

    @abstractmethod
    def list_accounts(self) -> List[AccountLedger]:
        """All known accounts, in first-reference order."""
        pass

    @abstractmethod
    def get_accounts_count(self) -> int:
        """Get total number of accounts."""
        pass

    def get_or_create_account(self, client_id: int) -> AccountLedger:
        account = self.get_account(client_id)
        if account is None:
            account = AccountLedger(
                client_id,
                reject_when_locked=self.reject_locked_account_transactions,
            )
            self.add_account(account)
            logger.debug("Account created", account_id=client_id)
        return account

    def route(self, transaction: Transaction) -> ProcessingResult:
        """Apply a transaction to its client's account.

        Invalid transactions are logged and reported as rejected; they never
        stop the caller from routing the next one.
        """
        account = self.get_or_create_account(transaction.client)
        try:
            result = account.process(transaction)
        except TransactionError as e:
            logger.error(
                "Failed transaction",
                error=e.error_kind.value,
                detail=e.detail,
                transaction=transaction.model_dump(mode="json"),
            )
            result = ProcessingResult.rejected(e.error_kind)

        self.stats.record(result)
        return result

    def snapshot(self) -> List[AccountState]:
        return [account.state() for account in self.list_accounts()]


class InMemoryAccountRepository(AccountRepository):
    def __init__(self, reject_locked_account_transactions: bool = False):
        super().__init__(reject_locked_account_transactions)
        self.accounts: Dict[int, AccountLedger] = {}

    def get_account(self, client_id: int) -> Optional[AccountLedger]:
        return self.accounts.get(client_id)

    def add_account(self, account: AccountLedger) -> None:
        if account.client_id in self.accounts:
            raise ValueError(f"Account {account.client_id} already exists")
        self.accounts[account.client_id] = account

    def list_accounts(self) -> List[AccountLedger]:
        return list(self.accounts.values())

    def get_accounts_count(self) -> int:
        return len(self.accounts)


def get_account_repository(settings: Optional[Settings] = None) -> AccountRepository:
    """Create the account repository for one run."""
    if settings is None:
        return InMemoryAccountRepository()
    return InMemoryAccountRepository(
        reject_locked_account_transactions=settings.reject_locked_account_transactions,
    )
