"""
Ledger Module

Owns every account keyed by account id. Coordinates operations that span
accounts (transfers, bulk interest), enforces the login lockout and writes
a whole-state snapshot to storage after each mutating operation.

Persistence failures are logged and never abort the calling operation.
"""

from decimal import Decimal
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import logging

from .accounts import Account, Clock, utc_now
from .config import BankConfig, get_config
from .currency import DEFAULT_RATE_TABLE, ExchangeRateTable, format_amount, to_decimal
from .logging_config import log_action, setup_logging
from .results import FailureReason, OperationResult
from .storage import InMemoryStorage, StorageError, StorageInterface, create_storage
from .transactions import Transaction


logger = logging.getLogger("personal_bank.ledger")

ACCOUNTS_TABLE = "accounts"

DEFAULT_MAX_FAILED_ATTEMPTS = 3
DEFAULT_LOCKOUT_SECONDS = 60


class Ledger:
    """
    Collection of accounts plus the operations that coordinate across them
    """

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        exchange_rates: Optional[ExchangeRateTable] = None,
        clock: Optional[Clock] = None,
        max_failed_attempts: int = DEFAULT_MAX_FAILED_ATTEMPTS,
        lockout_seconds: float = DEFAULT_LOCKOUT_SECONDS
    ):
        self.storage = storage if storage is not None else InMemoryStorage()
        self.exchange_rates = exchange_rates if exchange_rates is not None else DEFAULT_RATE_TABLE
        self.clock = clock or utc_now
        self.max_failed_attempts = max_failed_attempts
        self.lockout = timedelta(seconds=lockout_seconds)
        self.accounts: Dict[str, Account] = {}

    @classmethod
    def from_config(cls, config: Optional[BankConfig] = None, clock: Optional[Clock] = None) -> 'Ledger':
        """Build a ledger with the storage backend, rates, lockout policy and logging from settings"""
        config = config or get_config()
        setup_logging(config.log_level, log_format=config.log_format)
        return cls(
            storage=create_storage(config),
            exchange_rates=config.rate_table(),
            clock=clock,
            max_failed_attempts=config.max_failed_login_attempts,
            lockout_seconds=config.lockout_seconds
        )

    @property
    def reference_currency(self) -> str:
        return self.exchange_rates.reference_currency

    def create_account(self, account_id: str, owner_name: str, pin: str, initial_balance: Any) -> OperationResult:
        """
        Open an account and persist the ledger

        Args:
            account_id: Unique account identifier
            owner_name: Display name of the owner
            pin: Login PIN
            initial_balance: Opening balance in the reference currency (sign not checked)

        Returns:
            OperationResult, failing with ALREADY_EXISTS if the id is taken
        """
        if account_id in self.accounts:
            message = "An account with this ID already exists."
            log_action(logger, "warning", message, action="create_account", resource=account_id)
            return OperationResult.fail(FailureReason.ALREADY_EXISTS, message)

        account = Account.create(
            account_id, owner_name, pin, initial_balance,
            exchange_rates=self.exchange_rates, clock=self.clock
        )
        self.accounts[account_id] = account
        self.save()

        log_action(
            logger, "info", "Account successfully created.",
            action="create_account", resource=account_id,
            extra={"initial_balance": str(account.balance)}
        )
        return OperationResult.ok("Account successfully created.", account.transactions[0])

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        return self.accounts.get(account_id)

    def login(self, account_id: str, pin_attempt: str) -> OperationResult:
        """
        Check a PIN, applying the lockout policy

        After max_failed_attempts consecutive failures the account rejects
        every attempt, without checking the PIN, until the lockout window
        has passed since the last failure. A successful login clears the
        failure count.
        """
        account = self.accounts.get(account_id)
        if account is None:
            return self._not_found(account_id, "login", "Account ID not found.")

        now = self.clock()
        if account.is_locked(now, self.max_failed_attempts, self.lockout):
            message = "Account is temporarily locked. Please try again later."
            log_action(logger, "warning", message, action="login", resource=account_id)
            return OperationResult.fail(FailureReason.LOCKED, message)

        if account.validate_pin(pin_attempt):
            had_failures = account.failed_login_attempts > 0
            account.reset_failed_logins()
            if had_failures:
                self.save()
            log_action(logger, "info", "Login successful.", action="login", resource=account_id)
            return OperationResult.ok("Login successful.")

        attempts = account.record_failed_login(now)
        self.save()

        message = f"Invalid PIN. Attempt {attempts}/{self.max_failed_attempts}"
        if attempts >= self.max_failed_attempts:
            message += ". Account is locked. Please try again later."
        log_action(logger, "warning", message, action="login", resource=account_id,
                   extra={"failed_attempts": attempts})
        return OperationResult.fail(FailureReason.INVALID_PIN, message)

    def deposit(self, account_id: str, amount: Any, currency: Optional[str] = None) -> OperationResult:
        """Deposit into an account and persist the ledger"""
        account = self.accounts.get(account_id)
        if account is None:
            return self._not_found(account_id, "deposit")

        result = account.deposit(amount, currency or self.reference_currency)
        if result:
            self.save()
        return result

    def deposit_to_account(self, account_id: str, amount: Any, currency: Optional[str] = None) -> OperationResult:
        return self.deposit(account_id, amount, currency)

    def withdraw(self, account_id: str, amount: Any) -> OperationResult:
        """Withdraw from an account and persist the ledger"""
        account = self.accounts.get(account_id)
        if account is None:
            return self._not_found(account_id, "withdraw")

        result = account.withdraw(amount)
        if result:
            self.save()
        return result

    def transfer(self, from_account_id: str, to_account_id: str, amount: Any) -> OperationResult:
        """
        Move an amount in the reference currency between two accounts

        Either both legs happen or nothing changes: missing accounts, a
        non-positive amount or insufficient funds in the source are all
        rejected before any balance moves.

        Returns:
            OperationResult carrying the destination's deposit transaction
        """
        amount = to_decimal(amount)

        source = self.accounts.get(from_account_id)
        if source is None:
            return self._not_found(from_account_id, "transfer")
        destination = self.accounts.get(to_account_id)
        if destination is None:
            return self._not_found(to_account_id, "transfer")

        if amount <= 0:
            message = "Transfer amount must be positive."
            log_action(logger, "warning", message, action="transfer", resource=from_account_id,
                       extra={"amount": str(amount)})
            return OperationResult.fail(FailureReason.INVALID_AMOUNT, message)

        withdrawal = source.withdraw(amount)
        if not withdrawal:
            return withdrawal

        # GBP is always supported and amount > 0, so this leg cannot be rejected
        deposit = destination.deposit(amount, self.reference_currency)
        self.save()

        log_action(
            logger, "info", f"Transferred {format_amount(amount)} {self.reference_currency}",
            action="transfer", resource=from_account_id,
            extra={"to_account_id": to_account_id, "amount": str(amount)}
        )
        return OperationResult.ok(f"Transferred £{format_amount(amount)} to {to_account_id}", deposit.transaction)

    def convert_currency(self, amount: Any, from_currency: str, to_currency: str) -> Decimal:
        """Convert between currencies; Decimal("0") if either code is unknown"""
        return self.exchange_rates.convert(amount, from_currency, to_currency)

    def get_transactions(
        self,
        account_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> Optional[List[Transaction]]:
        """Transaction history of one account, or None if it does not exist"""
        account = self.accounts.get(account_id)
        if account is None:
            return None
        return account.get_transactions(start_date, end_date)

    def apply_interest_to_all_accounts(self, rate: Any) -> int:
        """
        Apply interest to every account, then persist once

        Returns:
            Number of accounts that received interest
        """
        rate = to_decimal(rate)
        for account in self.accounts.values():
            account.apply_interest(rate)

        if self.accounts:
            self.save()

        log_action(
            logger, "info", f"Applied interest to {len(self.accounts)} accounts",
            action="apply_interest", extra={"rate": str(rate)}
        )
        return len(self.accounts)

    def save(self) -> bool:
        """
        Rewrite every account to storage as one snapshot

        Returns:
            True on success; failures are logged, not raised
        """
        try:
            with self.storage.atomic():
                self.storage.clear_table(ACCOUNTS_TABLE)
                for account in self.accounts.values():
                    self.storage.save(ACCOUNTS_TABLE, account.id, self._account_to_dict(account))
        except StorageError as e:
            logger.error(f"Error saving accounts: {e}")
            return False
        return True

    def load(self) -> bool:
        """
        Replace the in-memory accounts with the stored snapshot

        An empty store gives an empty ledger. If anything cannot be decoded
        the in-memory accounts are left untouched.

        Returns:
            True if the snapshot was loaded
        """
        try:
            records = self.storage.load_all(ACCOUNTS_TABLE)
            accounts = {}
            for data in records:
                account = self._account_from_dict(data)
                accounts[account.id] = account
        except (StorageError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Error loading accounts: {e}")
            return False

        self.accounts = accounts
        logger.info(f"Loaded {len(accounts)} accounts")
        return True

    def close(self) -> None:
        """Flush the ledger and release the storage backend"""
        self.save()
        self.storage.close()

    def __len__(self) -> int:
        return len(self.accounts)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self.accounts

    def _not_found(self, account_id: str, action: str, message: str = "Account not found.") -> OperationResult:
        log_action(logger, "warning", message, action=action, resource=account_id)
        return OperationResult.fail(FailureReason.NOT_FOUND, message)

    def _account_to_dict(self, account: Account) -> Dict[str, Any]:
        """Convert Account to dictionary for storage"""
        return {
            'id': account.id,
            'created_at': account.created_at.isoformat(),
            'updated_at': account.updated_at.isoformat(),
            'owner_name': account.owner_name,
            'pin': account.pin,
            'balance': str(account.balance),
            'failed_login_attempts': account.failed_login_attempts,
            'last_failed_login_time': (
                account.last_failed_login_time.isoformat()
                if account.last_failed_login_time else None
            ),
            'transactions': [
                {
                    'date': t.date.isoformat(),
                    'amount': str(t.amount),
                    'description': t.description,
                    'currency': t.currency
                }
                for t in account.transactions
            ]
        }

    def _account_from_dict(self, data: Dict[str, Any]) -> Account:
        """Convert dictionary to Account"""
        last_failed = None
        if data.get('last_failed_login_time'):
            last_failed = datetime.fromisoformat(data['last_failed_login_time'])

        transactions = [
            Transaction(
                date=datetime.fromisoformat(t['date']),
                amount=to_decimal(t['amount']),
                description=t['description'],
                currency=t['currency']
            )
            for t in data['transactions']
        ]

        return Account(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            owner_name=data['owner_name'],
            pin=data['pin'],
            balance=to_decimal(data['balance']),
            transactions=transactions,
            failed_login_attempts=int(data.get('failed_login_attempts', 0)),
            last_failed_login_time=last_failed,
            exchange_rates=self.exchange_rates,
            clock=self.clock
        )
