"""
app/sales/pricing.py
--------------------
Pure-Python line pricing for the sales terminal.

A line's discount ("trade dividend") is exactly one of:

    none        — sold at MRP
    percentage  — unit price reduced by p % (0 ≤ p ≤ 100)
    divisor     — line subtotal divided by d (d ≥ 1)

No I/O and no hidden state here: every function is safe to call on each
keystroke. Validation of user input lives in make_discount(); the
compute_* functions trust their arguments.
"""
from __future__ import annotations
import enum
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from app.errors import ValidationError


Q = Decimal('0.01')   # quantize target
ZERO = Decimal('0')
HUNDRED = Decimal('100')
DISCOUNT_PLACES = 4  # scale of sale_lines.discount_value


def to_decimal(value) -> Decimal:
    """Convert str / int / Decimal to Decimal without going through float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = repr(value)
    return Decimal(str(value).strip())


def money(value) -> Decimal:
    return to_decimal(value).quantize(Q, rounding=ROUND_HALF_UP)


class DiscountKind(enum.Enum):
    none       = "none"
    percentage = "percentage"
    divisor    = "divisor"


@dataclass(frozen=True)
class DiscountPolicy:
    """One discount variant and its value. NONE always carries 0."""
    kind:  DiscountKind = DiscountKind.none
    value: Decimal = ZERO

    @classmethod
    def none(cls) -> 'DiscountPolicy':
        return cls()

    @classmethod
    def percentage(cls, value) -> 'DiscountPolicy':
        return cls(DiscountKind.percentage, to_decimal(value))

    @classmethod
    def divisor(cls, value) -> 'DiscountPolicy':
        return cls(DiscountKind.divisor, to_decimal(value))

    @property
    def label(self) -> str:
        """Receipt column text: '10%', 'Div. by 3' or '-'."""
        if self.kind is DiscountKind.percentage:
            return f'{self.value.normalize():f}%'
        if self.kind is DiscountKind.divisor:
            return f'Div. by {self.value.normalize():f}'
        return '-'

    def to_dict(self) -> dict:
        return {'type': self.kind.value, 'value': str(self.value)}

    @classmethod
    def from_dict(cls, data) -> 'DiscountPolicy':
        if not data:
            return cls.none()
        return make_discount(data.get('type'), data.get('value'))


# ── Line pricing ──────────────────────────────────────────────────

def compute_line_total(unit_price, quantity: int, discount: DiscountPolicy) -> Decimal:
    """
    Price of one line after its discount, quantized to 0.01.

        none        → unit_price × quantity
        percentage  → unit_price × (1 − p/100) × quantity
        divisor     → unit_price × quantity / d   (d ≤ 0 → no discount)
    """
    price = to_decimal(unit_price)
    qty   = Decimal(quantity)
    gross = price * qty

    if discount.kind is DiscountKind.percentage:
        total = price * (1 - discount.value / HUNDRED) * qty
    elif discount.kind is DiscountKind.divisor and discount.value > 0:
        total = gross / discount.value
    else:
        total = gross

    return total.quantize(Q, rounding=ROUND_HALF_UP)


def compute_discount_amount(unit_price, quantity: int, discount: DiscountPolicy) -> Decimal:
    """MRP total minus discounted total for one line."""
    gross = to_decimal(unit_price) * Decimal(quantity)
    return gross - compute_line_total(unit_price, quantity, discount)


# ── Input validation ──────────────────────────────────────────────

def make_discount(kind, value=None) -> DiscountPolicy:
    """
    Build a DiscountPolicy from raw form/JSON values.

    A blank or zero value means "no discount" for either variant, matching
    the terminal's behaviour of only recording positive dividends.

    Raises ValidationError for an unknown kind, a percentage outside
    0–100, a negative value, more than DISCOUNT_PLACES decimals, or a
    divisor between 0 and 1 (which would sell above MRP).
    """
    try:
        kind = DiscountKind(kind or 'none')
    except ValueError:
        raise ValidationError(f'Unknown discount type "{kind}".')

    if kind is DiscountKind.none:
        return DiscountPolicy.none()

    if value is None or str(value).strip() == '':
        return DiscountPolicy.none()
    try:
        amount = to_decimal(value)
    except (InvalidOperation, ValueError):
        raise ValidationError('Discount value must be a valid number.')
    if not amount.is_finite():
        raise ValidationError('Discount value must be a valid number.')
    if amount.normalize().as_tuple().exponent < -DISCOUNT_PLACES:
        raise ValidationError(f'Discount value can have at most {DISCOUNT_PLACES} decimal places.')

    if amount < 0:
        raise ValidationError('Discount value cannot be negative.')
    if amount == 0:
        return DiscountPolicy.none()

    if kind is DiscountKind.percentage:
        if amount > HUNDRED:
            raise ValidationError('Discount percentage must be between 0 and 100.')
        return DiscountPolicy.percentage(amount)

    if amount < 1:
        raise ValidationError('Discount divisor must be 1 or greater.')
    return DiscountPolicy.divisor(amount)
