from typing import Optional


class AccountsError(Exception):
    """Base class for account and transfer failures surfaced to callers."""

    status_code: int = 400
    error_code: str = "ACCOUNTS_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DuplicateAccountIdError(AccountsError):
    error_code = "DUPLICATE_ACCOUNT_ID"

    def __init__(self, account_id: str):
        super().__init__(f"Account id {account_id} already exists!")
        self.account_id = account_id


class AccountNotFoundError(AccountsError):
    status_code = 404
    error_code = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        super().__init__(f"Account {account_id} not found")
        self.account_id = account_id


class InvalidAmountError(AccountsError):
    """Raised for a non-positive transfer amount or a negative opening balance."""

    error_code = "INVALID_AMOUNT"


class InsufficientFundsError(AccountsError):
    error_code = "INSUFFICIENT_FUNDS"

    def __init__(self, account_id: str, message: Optional[str] = None):
        super().__init__(message or f"Insufficient balance in account {account_id}")
        self.account_id = account_id


class SameAccountTransferError(AccountsError):
    error_code = "SAME_ACCOUNT_TRANSFER"

    def __init__(self, account_id: str):
        super().__init__(f"Cannot transfer from account {account_id} to itself")
        self.account_id = account_id
