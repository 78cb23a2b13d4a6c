"""
Money and Currency Module

Currency codes with their display precision and an immutable Money value
type. All monetary values are Decimal; non-Decimal input is converted
through its string form so 0.1 stays 0.1.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from dataclasses import dataclass
from typing import Union
from enum import Enum

getcontext().prec = 28


class Currency(Enum):
    """Supported settlement currencies with precision info"""
    USDT = ("USDT", 2)  # Tether, settled on TRC20
    USD = ("USD", 2)
    EUR = ("EUR", 2)

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision

    @classmethod
    def from_code(cls, code: str) -> 'Currency':
        """Look up a currency by its ISO-style code"""
        try:
            return cls[code.upper()]
        except KeyError:
            raise ValueError(f"Unsupported currency: {code}")


def _quantum(currency: Currency) -> Decimal:
    return Decimal('0.1') ** currency.precision


@dataclass(frozen=True)
class Money:
    """
    Immutable amount of a single currency, rounded half-up to the currency
    precision on construction. Negative amounts are allowed (signed ledger
    entries); comparisons across currencies raise ValueError.
    """
    amount: Decimal
    currency: Currency = Currency.USDT

    def __post_init__(self):
        amount = self.amount
        if not isinstance(amount, Decimal):
            amount = Decimal(str(amount))
        object.__setattr__(
            self, 'amount',
            amount.quantize(_quantum(self.currency), rounding=ROUND_HALF_UP)
        )

    @classmethod
    def zero(cls, currency: Currency = Currency.USDT) -> 'Money':
        return cls(Decimal('0'), currency)

    def _check(self, other: 'Money', verb: str) -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Cannot {verb} Money and {type(other).__name__}")
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier: Union[Decimal, int, str]) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(self.amount * multiplier, self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __abs__(self) -> 'Money':
        return Money(abs(self.amount), self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __hash__(self) -> int:
        return hash((self.amount, self.currency.code))

    def __lt__(self, other: 'Money') -> bool:
        self._check(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._check(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._check(other, "compare")
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        return self.amount < Decimal('0')

    def floor_zero(self) -> 'Money':
        """max(0, self)"""
        return self if self.amount > 0 else Money.zero(self.currency)

    def to_string(self) -> str:
        """Format for display"""
        return f"{self.amount:,.{self.currency.precision}f} {self.currency.code}"

    def to_dict(self) -> dict:
        return {"amount": str(self.amount), "currency": self.currency.code}

    @classmethod
    def from_dict(cls, data: dict) -> 'Money':
        return cls(Decimal(data["amount"]), Currency.from_code(data["currency"]))


def parse_decimal(value: Union[str, int, Decimal], field_name: str = "value") -> Decimal:
    """
    Convert user input to Decimal, refusing floats and garbage.

    Raises:
        ValueError: If the value is not a finite decimal number
    """
    if isinstance(value, float):
        raise ValueError(f"{field_name} must be given as a string or Decimal, not float")
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Cannot convert {field_name} '{value}' to Decimal")
    if not result.is_finite():
        raise ValueError(f"{field_name} must be a finite number")
    return result


def check_precision(value: Decimal, currency: Currency, field_name: str = "amount") -> Decimal:
    """
    Refuse amounts that Money would have to round.

    Raises:
        ValueError: If value has more decimal places than the currency allows
    """
    exponent = value.normalize().as_tuple().exponent
    if exponent < -currency.precision:
        raise ValueError(
            f"{field_name} {value} has more than {currency.precision} decimal places for {currency.code}"
        )
    return value
