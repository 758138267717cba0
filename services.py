from decimal import Decimal, Inexact, localcontext
import structlog

from exceptions import (
    AccountNotFoundError,
    InsufficientFundsError,
    InvalidAmountError,
    SameAccountTransferError,
)
from models import Account, TransferResponse
from notifications import NotificationService
from repositories import AccountRepository

# Configure structured logging
logger = structlog.get_logger()


class AccountsService:
    def __init__(self, account_repo: AccountRepository, notification_service: NotificationService):
        self.account_repo = account_repo
        self.notification_service = notification_service

    def create_account(self, account: Account) -> Account:
        if account.balance < 0:
            raise InvalidAmountError("Initial balance must not be negative")

        self.account_repo.create(account)

        logger.info(
            "Account created",
            account_id=account.accountId,
            balance=str(account.balance)
        )
        return account

    def get_account(self, account_id: str) -> Account:
        account = self.account_repo.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def transfer_money(self, account_from_id: str, account_to_id: str, amount: Decimal) -> TransferResponse:
        """Move ``amount`` from one account to another.

        Both balances are rewritten while the locks of both accounts are held,
        so a reader holding those locks never sees the debit without the
        matching credit; plain ``get`` calls see each account separately. Locks
        are always taken in ascending account ID order, which rules out a
        deadlock between transfers running in opposite directions.
        """

        logger.info(
            "Processing transfer",
            account_from_id=account_from_id,
            account_to_id=account_to_id,
            amount=str(amount)
        )

        if amount <= 0:
            logger.warning("Invalid transfer amount", amount=str(amount))
            raise InvalidAmountError("Transfer amount must be greater than zero")

        for account_id in (account_from_id, account_to_id):
            if self.account_repo.get(account_id) is None:
                logger.warning("Account not found", account_id=account_id)
                raise AccountNotFoundError(account_id)

        if account_from_id == account_to_id:
            logger.warning("Rejected transfer to the same account", account_id=account_from_id)
            raise SameAccountTransferError(account_from_id)

        with self.account_repo.lock_accounts(account_from_id, account_to_id):
            account_from = self._get_locked(account_from_id)
            account_to = self._get_locked(account_to_id)

            if account_from.balance < amount:
                logger.warning(
                    "Insufficient funds for transfer",
                    account_id=account_from_id,
                    current_balance=str(account_from.balance),
                    requested_amount=str(amount)
                )
                raise InsufficientFundsError(account_from_id)

            account_from = account_from.model_copy(
                update={"balance": _exact(account_from.balance, amount.copy_negate())}
            )
            account_to = account_to.model_copy(
                update={"balance": _exact(account_to.balance, amount)}
            )

            self.account_repo.update(account_from)
            self.account_repo.update(account_to)

        logger.info(
            "Transfer processed successfully",
            account_from_id=account_from_id,
            account_to_id=account_to_id,
            amount=str(amount),
            from_balance=str(account_from.balance),
            to_balance=str(account_to.balance)
        )

        self._notify(account_from, f"Transferred {amount} to {account_to_id}")
        self._notify(account_to, f"Received {amount} from {account_from_id}")

        return TransferResponse(
            status="completed",
            accountFromId=account_from_id,
            accountToId=account_to_id,
            amount=amount
        )

    def _get_locked(self, account_id: str) -> Account:
        # State read before locking may be stale; only this read is authoritative.
        account = self.account_repo.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def _notify(self, account: Account, message: str) -> None:
        try:
            self.notification_service.notify_about_transfer(account, message)
        except Exception as e:
            logger.error(
                "Transfer notification failed",
                account_id=account.accountId,
                error=str(e),
                exc_info=True
            )


def _exact(balance: Decimal, delta: Decimal) -> Decimal:
    """Add without rounding, whatever the number of digits involved."""
    with localcontext() as ctx:
        ctx.prec = max(
            max(balance.adjusted(), delta.adjusted())
            - min(balance.as_tuple().exponent, delta.as_tuple().exponent) + 2,
            ctx.prec
        )
        ctx.traps[Inexact] = True
        return balance + delta


# Factory function for dependency injection
def get_accounts_service(
    account_repo: AccountRepository,
    notification_service: NotificationService
) -> AccountsService:
    return AccountsService(account_repo, notification_service)
