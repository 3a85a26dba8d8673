# billing_api/billing/totals.py
"""
Invoice total and tax calculation.

All arithmetic happens in integer minor units (cents). An item price given as
a string is read as a decimal amount in major units ("12.50"), an integer is
read as minor units already (1250). Tax is computed per item on the line
amount (price * quantity) and rounded half-up to whole minor units before it
is added to the bucket of its percentage.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, Iterable, Union

from billing_api.config import SETTLEMENT_CURRENCY

CENTS = Decimal("0.01")
HUNDRED = Decimal(100)


class TotalsError(ValueError):
    """Raised when an invoice total cannot be computed; the write must abort."""


class InvalidItemPrice(TotalsError):
    pass


class UnsupportedCurrency(TotalsError):
    pass


@dataclass(frozen=True)
class Totals:
    price: Decimal
    currency: str
    taxes: Dict[int, Decimal] = field(default_factory=dict)

    def taxes_for_storage(self) -> Dict[str, str]:
        # JSON object keys are strings
        return {str(pct): str(amount) for pct, amount in sorted(self.taxes.items())}


def to_minor_units(price: Union[str, int]) -> int:
    if isinstance(price, bool):
        raise InvalidItemPrice(f"Item price must be a string or an integer, got {price!r}")

    if isinstance(price, int):
        return price

    if isinstance(price, str):
        try:
            amount = Decimal(price.strip())
        except InvalidOperation:
            raise InvalidItemPrice(f"Item price {price!r} is not a decimal amount")
        if not amount.is_finite():
            raise InvalidItemPrice(f"Item price {price!r} is not a decimal amount")
        # int() truncates toward zero
        return int(amount * HUNDRED)

    raise InvalidItemPrice(f"Item price must be a string or an integer, got {price!r}")


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / HUNDRED).quantize(CENTS)


def tax_amount(line_amount: int, percentage) -> int:
    raw = Decimal(line_amount) * Decimal(str(percentage)) / HUNDRED
    return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def compute_totals(items: Iterable, currency: str = SETTLEMENT_CURRENCY) -> Totals:
    """
    Aggregate the items of an invoice into its total price and tax breakdown.

    Every item needs `price`, `price_currency`, `quantity` and `taxes`
    (a list of percentages). Items in another currency than `currency`
    raise UnsupportedCurrency; unreadable prices raise InvalidItemPrice.
    """
    total = 0
    buckets: Dict[int, int] = {}

    for item in items:
        if item.price_currency.upper() != currency:
            raise UnsupportedCurrency(
                f"Item currency {item.price_currency} differs from settlement currency {currency}"
            )

        line_amount = to_minor_units(item.price) * item.quantity
        total += line_amount

        for percentage in item.taxes:
            buckets[percentage] = buckets.get(percentage, 0) + tax_amount(line_amount, percentage)

    return Totals(
        price=from_minor_units(total),
        currency=currency,
        taxes={pct: from_minor_units(amount) for pct, amount in buckets.items()},
    )
