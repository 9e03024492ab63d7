"""
Values -- Currency, Money and Quantity.

Every shilling and every kilogram in the payout core travels as one of
these. They are frozen, carry their currency or unit with them, and
refuse arithmetic that would mix two currencies or two units.

    price = Money.of("100", "KES")
    delivered = Quantity.of(120)                # kg by default
    (price * delivered.value).round()           # Money('12000.00', 'KES')

Amounts are always Decimal. Rounding is explicit (``Money.round``) and
uses the currency's own precision: KES to the cent, UGX to the shilling.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import total_ordering

from agri_kernel.domain.currency import CurrencyRegistry


def _to_decimal(value: object, what: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid {what}: {value}") from e


def _scalar(factor: object) -> Decimal | None:
    if isinstance(factor, Decimal):
        return factor
    if isinstance(factor, (int, str)) and not isinstance(factor, bool):
        return Decimal(str(factor))
    return None


@dataclass(frozen=True, slots=True)
class Currency:
    """Supported ISO 4217 code, upper-cased on construction."""

    code: str

    def __post_init__(self) -> None:
        normalized = self.code.upper().strip() if self.code else ""
        if not CurrencyRegistry.is_valid(normalized):
            raise ValueError(f"Invalid ISO 4217 currency code: {self.code}")
        object.__setattr__(self, "code", normalized)

    @property
    def decimal_places(self) -> int:
        return CurrencyRegistry.get_decimal_places(self.code)

    @property
    def rounding_tolerance(self) -> Decimal:
        return CurrencyRegistry.get_rounding_tolerance(self.code)

    @property
    def name(self) -> str:
        info = CurrencyRegistry.get_info(self.code)
        return info.name if info else self.code

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


@total_ordering
@dataclass(frozen=True, slots=True)
class Money:
    """
    An amount in one currency.

    Equality compares the Decimal value, so ``240`` and ``240.00`` KES are
    equal. Results of arithmetic are not rounded; call ``round()`` at the
    point where a payable figure is produced.
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", _to_decimal(self.amount, "amount"))
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        elif not isinstance(self.currency, Currency):
            raise TypeError(f"currency must be Currency or str, got {type(self.currency)}")

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        return cls(_to_decimal(amount, "amount"), currency)

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        return cls(Decimal("0"), currency)

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """Round to the currency's decimal places (half up unless told otherwise)."""
        quantum = Decimal(1).scaleb(-self.currency.decimal_places)
        return Money(self.amount.quantize(quantum, rounding=rounding), self.currency)

    def _same_currency(self, other: Money, op: str) -> None:
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot {op} Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._same_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._same_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> Money:
        return Money(-self.amount, self.currency)

    def __abs__(self) -> Money:
        return Money(abs(self.amount), self.currency)

    def __mul__(self, factor: Decimal | int | str) -> Money:
        scalar = _scalar(factor)
        if scalar is None:
            return NotImplemented
        return Money(self.amount * scalar, self.currency)

    __rmul__ = __mul__

    def __truediv__(self, divisor: Decimal | int | str) -> Money:
        scalar = _scalar(divisor)
        if scalar is None:
            return NotImplemented
        return Money(self.amount / scalar, self.currency)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._same_currency(other, "compare")
        return self.amount < other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"


@total_ordering
@dataclass(frozen=True, slots=True)
class Quantity:
    """
    A produce quantity with its unit (kg, crates, bunches).

    Units are compared after lower-casing. No conversion between units is
    attempted; mixing them raises.
    """

    value: Decimal
    unit: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _to_decimal(self.value, "quantity value"))
        if not self.unit or not self.unit.strip():
            raise ValueError("Quantity unit is required")
        object.__setattr__(self, "unit", self.unit.strip().lower())

    @classmethod
    def of(cls, value: Decimal | str | int, unit: str = "kg") -> Quantity:
        return cls(_to_decimal(value, "quantity value"), unit)

    @classmethod
    def zero(cls, unit: str = "kg") -> Quantity:
        return cls(Decimal("0"), unit)

    @property
    def is_zero(self) -> bool:
        return self.value == 0

    @property
    def is_positive(self) -> bool:
        return self.value > 0

    def _same_unit(self, other: Quantity, op: str) -> None:
        if self.unit != other.unit:
            raise ValueError(
                f"Cannot {op} Quantity with different units: {self.unit} and {other.unit}"
            )

    def __add__(self, other: Quantity) -> Quantity:
        if not isinstance(other, Quantity):
            return NotImplemented
        self._same_unit(other, "add")
        return Quantity(self.value + other.value, self.unit)

    def __sub__(self, other: Quantity) -> Quantity:
        if not isinstance(other, Quantity):
            return NotImplemented
        self._same_unit(other, "subtract")
        return Quantity(self.value - other.value, self.unit)

    def __mul__(self, factor: Decimal | int | str) -> Quantity:
        scalar = _scalar(factor)
        if scalar is None:
            return NotImplemented
        return Quantity(self.value * scalar, self.unit)

    __rmul__ = __mul__

    def __lt__(self, other: Quantity) -> bool:
        if not isinstance(other, Quantity):
            return NotImplemented
        self._same_unit(other, "compare")
        return self.value < other.value

    def __str__(self) -> str:
        return f"{self.value} {self.unit}"

    def __repr__(self) -> str:
        return f"Quantity({self.value!r}, {self.unit!r})"
