from abc import ABC, abstractmethod
from contextlib import ExitStack, contextmanager
from typing import Dict, Iterator, Optional
import threading

from exceptions import AccountNotFoundError, DuplicateAccountIdError
from models import Account


class AccountRepository(ABC):
    @abstractmethod
    def create(self, account: Account) -> None:
        """Insert a new account. Raises DuplicateAccountIdError if the ID is taken."""
        pass

    @abstractmethod
    def get(self, account_id: str) -> Optional[Account]:
        """Get account state. Returns None if account doesn't exist."""
        pass

    @abstractmethod
    def update(self, account: Account) -> None:
        """Replace the stored state of an existing account."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove all accounts."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Get total number of accounts."""
        pass

    @abstractmethod
    def lock_accounts(self, *account_ids: str):
        """Context manager holding the exclusive locks of the given accounts."""
        pass


class InMemoryAccountRepository(AccountRepository):
    """Process-local account store.

    The mapping itself is guarded by one short-lived lock, so lookups and
    inserts are atomic. Balance changes are serialized by a separate lock per
    account, taken through ``lock_accounts``.
    """

    def __init__(self):
        self._accounts: Dict[str, Account] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._mapping_lock = threading.Lock()

    def create(self, account: Account) -> None:
        with self._mapping_lock:
            if account.accountId in self._accounts:
                raise DuplicateAccountIdError(account.accountId)
            self._accounts[account.accountId] = account
            self._locks[account.accountId] = threading.Lock()

    def get(self, account_id: str) -> Optional[Account]:
        with self._mapping_lock:
            return self._accounts.get(account_id)

    def update(self, account: Account) -> None:
        with self._mapping_lock:
            if account.accountId not in self._accounts:
                raise AccountNotFoundError(account.accountId)
            self._accounts[account.accountId] = account

    def clear(self) -> None:
        """Clear all accounts (for testing)."""
        with self._mapping_lock:
            self._accounts.clear()
            self._locks.clear()

    def count(self) -> int:
        with self._mapping_lock:
            return len(self._accounts)

    def get_lock(self, account_id: str) -> threading.Lock:
        """Get lock for specific account."""
        with self._mapping_lock:
            lock = self._locks.get(account_id)
        if lock is None:
            raise AccountNotFoundError(account_id)
        return lock

    @contextmanager
    def lock_accounts(self, *account_ids: str) -> Iterator[None]:
        # Ascending ID order for every caller, whatever the transfer direction.
        ordered_ids = sorted(set(account_ids))
        with ExitStack() as stack:
            for account_id in ordered_ids:
                stack.enter_context(self.get_lock(account_id))
            yield


# Singleton instance (em produção, usar dependency injection)
_account_repo = InMemoryAccountRepository()


def get_account_repository() -> AccountRepository:
    return _account_repo


# Para testes
def reset_repositories():
    """Reset all repositories to initial state (for testing only)."""
    global _account_repo
    _account_repo = InMemoryAccountRepository()
