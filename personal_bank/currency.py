"""
Currency Support Module

Holds the static exchange rate table and converts amounts between the
supported currencies. Every rate is relative to the reference currency
(GBP), which has an implicit rate of 1 and is not stored in the table.
NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, getcontext
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

# Set global decimal context for financial precision
getcontext().prec = 28

REFERENCE_CURRENCY = "GBP"

DISPLAY_PRECISION = 2

DEFAULT_EXCHANGE_RATES: Mapping[str, Decimal] = MappingProxyType({
    "EUR": Decimal("1.13"),
    "USD": Decimal("1.24"),
    "AUD": Decimal("1.80"),
    "CNY": Decimal("8.70"),
    "CHF": Decimal("1.07"),
})


def to_decimal(value: Any) -> Decimal:
    """
    Convert a numeric value to Decimal without going through binary floats

    Args:
        value: Decimal, int, float or numeric string

    Returns:
        Decimal value

    Raises:
        ValueError: If value is not a finite number
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Cannot convert {value!r} to Decimal")
    else:
        try:
            result = Decimal(str(value))
        except ArithmeticError:
            raise ValueError(f"Cannot convert {value!r} to Decimal")
    if not result.is_finite():
        raise ValueError(f"Amount must be finite, got {value!r}")
    return result


def round_for_display(value: Decimal) -> Decimal:
    """Round an amount to pence for display; stored amounts are never rounded"""
    return value.quantize(Decimal("0.1") ** DISPLAY_PRECISION, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal) -> str:
    """Format for display, e.g. 1,234.50"""
    return f"{round_for_display(value):,.{DISPLAY_PRECISION}f}"


class ExchangeRateTable:
    """
    Read-only table of GBP-relative exchange rates.

    A rate of 1.24 for USD means ``convert(x, "USD", "GBP") == x * 1.24``.
    Unknown codes have a rate of zero, so any conversion involving them
    yields exactly ``Decimal("0")``.
    """

    def __init__(
        self,
        rates: Optional[Mapping[str, Any]] = None,
        reference_currency: str = REFERENCE_CURRENCY
    ):
        source = DEFAULT_EXCHANGE_RATES if rates is None else rates
        cleaned: Dict[str, Decimal] = {}
        for code, rate in source.items():
            if code == reference_currency:
                raise ValueError(f"{reference_currency} is the reference currency and cannot have a rate")
            value = to_decimal(rate)
            if value <= 0:
                raise ValueError(f"Exchange rate for {code} must be positive, got {value}")
            cleaned[code] = value

        self._reference_currency = reference_currency
        self._rates: Mapping[str, Decimal] = MappingProxyType(cleaned)

    @property
    def reference_currency(self) -> str:
        return self._reference_currency

    @property
    def currencies(self) -> Tuple[str, ...]:
        """All accepted codes, reference currency first"""
        return (self._reference_currency,) + tuple(self._rates)

    def rate_for(self, currency: str) -> Decimal:
        """Get the GBP-relative rate for a code (1 for GBP, 0 if unknown)"""
        if currency == self._reference_currency:
            return Decimal("1")
        return self._rates.get(currency, Decimal("0"))

    def is_supported(self, currency: str) -> bool:
        """Check if a currency code is the reference currency or in the table"""
        return currency == self._reference_currency or currency in self._rates

    def convert(self, amount: Any, from_currency: str, to_currency: str) -> Decimal:
        """
        Convert an amount between two currencies

        Args:
            amount: Amount expressed in from_currency
            from_currency: Source currency code
            to_currency: Target currency code

        Returns:
            ``amount * (rate_from / rate_to)``, or Decimal("0") if either
            code is unknown
        """
        rate_from = self.rate_for(from_currency)
        rate_to = self.rate_for(to_currency)
        if rate_from == 0 or rate_to == 0:
            return Decimal("0")
        return to_decimal(amount) * (rate_from / rate_to)

    def as_dict(self) -> Dict[str, Decimal]:
        """Copy of the table without the reference currency"""
        return dict(self._rates)

    def __contains__(self, currency: object) -> bool:
        return isinstance(currency, str) and self.is_supported(currency)

    def __repr__(self) -> str:
        rates = ", ".join(f"{code}={rate}" for code, rate in self._rates.items())
        return f"ExchangeRateTable({self._reference_currency}; {rates})"


DEFAULT_RATE_TABLE = ExchangeRateTable()
