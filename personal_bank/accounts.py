"""
Account Management Module

A single account: balance in the reference currency, PIN, login lockout
counters and the append-only transaction history. Every successful
balance change appends exactly one transaction; a rejected operation
changes nothing and reports why through an OperationResult.
"""

from decimal import Decimal
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional
import logging

from .currency import DEFAULT_RATE_TABLE, ExchangeRateTable, format_amount, to_decimal
from .logging_config import log_action
from .results import FailureReason, OperationResult
from .storage import StorageRecord
from .transactions import Transaction, TransactionKind


logger = logging.getLogger("personal_bank.accounts")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass
class Account(StorageRecord):
    """
    Bank account owned by one person and denominated in the reference currency
    """
    owner_name: str
    pin: str = field(repr=False)
    balance: Decimal = Decimal("0")
    transactions: List[Transaction] = field(default_factory=list)
    failed_login_attempts: int = 0
    last_failed_login_time: Optional[datetime] = None
    exchange_rates: ExchangeRateTable = field(default=DEFAULT_RATE_TABLE, repr=False, compare=False)
    clock: Clock = field(default=utc_now, repr=False, compare=False)

    def __post_init__(self):
        if not isinstance(self.balance, Decimal):
            self.balance = to_decimal(self.balance)

    @classmethod
    def create(
        cls,
        account_id: str,
        owner_name: str,
        pin: str,
        initial_balance: Any,
        exchange_rates: Optional[ExchangeRateTable] = None,
        clock: Optional[Clock] = None
    ) -> 'Account':
        """
        Open a new account seeded with an "Initial Deposit" transaction

        The sign of initial_balance is not checked.

        Args:
            account_id: Unique account identifier
            owner_name: Display name of the owner
            pin: Shared secret used for login
            initial_balance: Opening balance in the reference currency
            exchange_rates: Rate table for deposits (defaults to the static table)
            clock: Source of timestamps (defaults to UTC now)

        Returns:
            Created Account object
        """
        clock = clock or utc_now
        rates = exchange_rates if exchange_rates is not None else DEFAULT_RATE_TABLE
        now = clock()
        balance = to_decimal(initial_balance)

        account = cls(
            id=account_id,
            created_at=now,
            updated_at=now,
            owner_name=owner_name,
            pin=pin,
            balance=balance,
            exchange_rates=rates,
            clock=clock
        )
        account._record(TransactionKind.INITIAL_DEPOSIT, balance, rates.reference_currency)
        return account

    @property
    def account_id(self) -> str:
        return self.id

    @property
    def reference_currency(self) -> str:
        return self.exchange_rates.reference_currency

    def deposit(self, amount: Any, currency: Optional[str] = None) -> OperationResult:
        """
        Deposit an amount given in any supported currency

        The amount is converted to the reference currency before it is
        credited. The transaction keeps the original currency code.

        Args:
            amount: Non-negative amount in `currency`
            currency: Currency code, reference currency if omitted

        Returns:
            OperationResult carrying the new transaction on success
        """
        currency = currency or self.reference_currency
        amount = to_decimal(amount)

        if amount < 0:
            return self._reject(FailureReason.NEGATIVE_AMOUNT, "Cannot deposit a negative amount.", "deposit")

        if not self.exchange_rates.is_supported(currency):
            return self._reject(FailureReason.UNSUPPORTED_CURRENCY, f"Currency {currency} not supported.", "deposit")

        converted = self.convert_currency(amount, currency, self.reference_currency)
        if converted == 0:
            return self._reject(FailureReason.CONVERSION_ERROR, "Error in currency conversion.", "deposit")

        self.balance += converted
        transaction = self._record(TransactionKind.DEPOSIT, converted, currency)
        log_action(
            logger, "info", f"Deposited {format_amount(converted)} {self.reference_currency}",
            action="deposit", resource=self.id,
            extra={"amount": str(amount), "currency": currency, "credited": str(converted)}
        )
        return OperationResult.ok(f"Deposited £{format_amount(converted)} ({amount} {currency})", transaction)

    def withdraw(self, amount: Any) -> OperationResult:
        """
        Withdraw an amount in the reference currency

        Succeeds iff amount <= balance. Negative amounts are not rejected.
        """
        amount = to_decimal(amount)

        if amount > self.balance:
            return self._reject(FailureReason.INSUFFICIENT_FUNDS, "Insufficient funds.", "withdraw")

        self.balance -= amount
        transaction = self._record(TransactionKind.WITHDRAWAL, -amount, self.reference_currency)
        log_action(
            logger, "info", f"Withdrew {format_amount(amount)} {self.reference_currency}",
            action="withdraw", resource=self.id, extra={"amount": str(amount)}
        )
        return OperationResult.ok(f"Withdrew £{format_amount(amount)}", transaction)

    def apply_interest(self, rate: Any) -> Transaction:
        """Credit balance * rate; rate is not bounded, so a negative rate debits"""
        interest = self.balance * to_decimal(rate)
        self.balance += interest
        return self._record(TransactionKind.INTEREST_APPLIED, interest, self.reference_currency)

    def convert_currency(self, amount: Any, from_currency: str, to_currency: str) -> Decimal:
        """Convert between currencies; Decimal("0") if either code is unknown"""
        return self.exchange_rates.convert(amount, from_currency, to_currency)

    def balance_in(self, currency: str) -> Decimal:
        """Current balance expressed in another currency"""
        return self.convert_currency(self.balance, self.reference_currency, currency)

    def get_transactions(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> List[Transaction]:
        """
        Get transaction history in insertion order

        With bounds, only entries strictly between start_date and end_date
        are returned; an entry exactly on a bound is excluded. Naive bounds
        are taken as UTC.
        """
        start_date = _as_utc(start_date)
        end_date = _as_utc(end_date)
        return [
            t for t in self.transactions
            if (start_date is None or t.date > start_date)
            and (end_date is None or t.date < end_date)
        ]

    def validate_pin(self, pin_attempt: str) -> bool:
        return self.pin == pin_attempt

    def is_locked(self, now: datetime, max_attempts: int, lockout: timedelta) -> bool:
        """Check if logins are blocked: too many failures within the lockout window"""
        return (
            self.failed_login_attempts >= max_attempts
            and self.last_failed_login_time is not None
            and now - self.last_failed_login_time < lockout
        )

    def record_failed_login(self, now: datetime) -> int:
        """Count a failed login and return the running total"""
        self.failed_login_attempts += 1
        self.last_failed_login_time = now
        return self.failed_login_attempts

    def reset_failed_logins(self) -> None:
        self.failed_login_attempts = 0

    def _record(self, kind: TransactionKind, amount: Decimal, currency: str) -> Transaction:
        now = self.clock()
        transaction = Transaction(date=now, amount=amount, description=kind.value, currency=currency)
        self.transactions.append(transaction)
        self.updated_at = now
        return transaction

    def _reject(self, reason: FailureReason, message: str, action: str) -> OperationResult:
        log_action(logger, "warning", message, action=action, resource=self.id,
                   extra={"reason": reason.value})
        return OperationResult.fail(reason, message)
