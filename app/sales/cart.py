"""
app/sales/cart.py
-----------------
The in-progress sale (SaleDraft) and its line items.

A draft is stored between requests as a plain dict:
{
    "customer_name":    str,
    "customer_phone":   str,
    "customer_address": str,
    "payment_method":   "Cash" | "Card" | "UPI" | "Bank Transfer",
    "notes":            str,
    "lines": [
        {
            "item":       {"id": int, "code": str, "name": str, "unit": str, "mrp": str},
            "quantity":   int,
            "unit_price": str,   ← stored as string to survive JSON serialisation
            "discount":   {"type": "none" | "percentage" | "divisor", "value": str},
            "line_total": str    ← informational; always recomputed on load
        },
        ...
    ]
}

All money values are Decimal in memory and strings in JSON — no float.
"""
from __future__ import annotations
import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from app.errors import ValidationError
from app.sales.pricing import (
    DiscountPolicy, compute_line_total, compute_discount_amount, money, to_decimal,
)


class PaymentMethod(enum.Enum):
    cash          = "Cash"
    card          = "Card"
    upi           = "UPI"
    bank_transfer = "Bank Transfer"

    @classmethod
    def parse(cls, raw) -> 'PaymentMethod':
        if isinstance(raw, cls):
            return raw
        for method in cls:
            if str(raw).strip().lower() in (method.value.lower(), method.name):
                return method
        raise ValidationError(f'Unknown payment method "{raw}".')


CUSTOMER_FIELDS = ('customer_name', 'customer_phone', 'customer_address')


# ── Line items ────────────────────────────────────────────────────

@dataclass(frozen=True)
class InventoryItemRef:
    """Catalog item as it was when added to the cart."""
    id:   int
    code: str
    name: str
    unit: str
    mrp:  Decimal

    def to_dict(self) -> dict:
        return {'id': self.id, 'code': self.code, 'name': self.name,
                'unit': self.unit, 'mrp': str(self.mrp)}

    @classmethod
    def from_dict(cls, data: dict) -> 'InventoryItemRef':
        return cls(
            id=int(data['id']),
            code=data.get('code') or '',
            name=data.get('name') or '',
            unit=data.get('unit') or '',
            mrp=to_decimal(data.get('mrp', '0')),
        )


@dataclass
class SaleLineItem:
    item:       InventoryItemRef
    quantity:   int
    unit_price: Decimal
    discount:   DiscountPolicy = field(default_factory=DiscountPolicy.none)

    @property
    def line_total(self) -> Decimal:
        return compute_line_total(self.unit_price, self.quantity, self.discount)

    @property
    def gross(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def discount_amount(self) -> Decimal:
        return compute_discount_amount(self.unit_price, self.quantity, self.discount)

    def to_dict(self) -> dict:
        return {
            'item':       self.item.to_dict(),
            'quantity':   self.quantity,
            'unit_price': str(self.unit_price),
            'discount':   self.discount.to_dict(),
            'line_total': str(self.line_total),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SaleLineItem':
        item = InventoryItemRef.from_dict(data['item'])
        return cls(
            item=item,
            quantity=_check_quantity(data['quantity']),
            unit_price=to_decimal(data.get('unit_price', item.mrp)),
            discount=DiscountPolicy.from_dict(data.get('discount')),
        )


def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool):
        raise ValidationError('Quantity must be a whole number.')
    try:
        qty = int(str(quantity).strip())
    except ValueError:
        raise ValidationError('Quantity must be a whole number.')
    if qty < 1:
        raise ValidationError('Quantity must be at least 1.')
    return qty


# ── Totals ────────────────────────────────────────────────────────

def cart_totals(lines) -> dict:
    """
    Compute subtotal, total_discount, total_tax and grand_total.

        subtotal       = Σ unit_price × quantity
        total_discount = subtotal − Σ line_total
        grand_total    = subtotal − total_discount + total_tax

    Tax is not charged at the counter, so total_tax is always 0.
    """
    subtotal   = Decimal('0')
    net        = Decimal('0')
    item_count = 0
    for line in lines:
        subtotal   += line.gross
        net        += line.line_total
        item_count += line.quantity

    subtotal       = money(subtotal)
    total_discount = subtotal - net
    total_tax      = money(0)
    return {
        'subtotal':       subtotal,
        'total_discount': total_discount,
        'total_tax':      total_tax,
        'grand_total':    subtotal - total_discount + total_tax,
        'item_count':     item_count,
    }


# ── Draft ─────────────────────────────────────────────────────────

@dataclass
class SaleDraft:
    """The cart being assembled at the terminal."""
    customer_name:    str = ''
    customer_phone:   str = ''
    customer_address: str = ''
    lines:            List[SaleLineItem] = field(default_factory=list)
    payment_method:   PaymentMethod = PaymentMethod.cash
    notes:            str = ''

    # ── Line operations ───────────────────────────────────────────
    def add_line(self, item: InventoryItemRef, quantity, discount: Optional[DiscountPolicy] = None) -> 'SaleDraft':
        """Append a new line priced at the item's MRP. Stock is not checked here."""
        self.lines.append(SaleLineItem(
            item=item,
            quantity=_check_quantity(quantity),
            unit_price=item.mrp,
            discount=discount or DiscountPolicy.none(),
        ))
        return self

    def update_quantity(self, index: int, quantity) -> 'SaleDraft':
        self.line(index).quantity = _check_quantity(quantity)
        return self

    def update_discount(self, index: int, discount: DiscountPolicy) -> 'SaleDraft':
        self.line(index).discount = discount
        return self

    def remove_line(self, index: int) -> 'SaleDraft':
        self.line(index)
        del self.lines[index]
        return self

    def clear(self) -> 'SaleDraft':
        """Drop every line; customer, payment and notes are kept."""
        self.lines = []
        return self

    def reset(self) -> 'SaleDraft':
        """Return to the empty default draft in place."""
        default = SaleDraft()
        self.__dict__.update(default.__dict__)
        return self

    def line(self, index) -> SaleLineItem:
        if not isinstance(index, int) or not 0 <= index < len(self.lines):
            raise ValidationError(f'No item at position {index} in the sale.')
        return self.lines[index]

    # ── Header fields ─────────────────────────────────────────────
    def update_customer(self, **fields) -> 'SaleDraft':
        for name, value in fields.items():
            if name not in CUSTOMER_FIELDS:
                raise ValidationError(f'Unknown customer field "{name}".')
            setattr(self, name, (value or '').strip())
        return self

    def set_payment_method(self, method) -> 'SaleDraft':
        self.payment_method = PaymentMethod.parse(method)
        return self

    def set_notes(self, notes) -> 'SaleDraft':
        self.notes = notes or ''
        return self

    # ── Derived values ────────────────────────────────────────────
    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def totals(self) -> dict:
        return cart_totals(self.lines)

    @property
    def subtotal(self) -> Decimal:
        return self.totals['subtotal']

    @property
    def total_discount(self) -> Decimal:
        return self.totals['total_discount']

    @property
    def grand_total(self) -> Decimal:
        return self.totals['grand_total']

    def snapshot(self) -> 'SaleDraft':
        """Independent copy; later edits to this draft don't leak into it."""
        return SaleDraft.from_dict(self.to_dict())

    # ── Serialisation ─────────────────────────────────────────────
    def to_dict(self) -> dict:
        return {
            'customer_name':    self.customer_name,
            'customer_phone':   self.customer_phone,
            'customer_address': self.customer_address,
            'payment_method':   self.payment_method.value,
            'notes':            self.notes,
            'lines':            [line.to_dict() for line in self.lines],
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'SaleDraft':
        if not data:
            return cls()
        return cls(
            customer_name=data.get('customer_name') or '',
            customer_phone=data.get('customer_phone') or '',
            customer_address=data.get('customer_address') or '',
            lines=[SaleLineItem.from_dict(line) for line in data.get('lines') or []],
            payment_method=PaymentMethod.parse(data.get('payment_method') or PaymentMethod.cash),
            notes=data.get('notes') or '',
        )


def reset_draft() -> SaleDraft:
    """A brand-new empty draft."""
    return SaleDraft()


# ── Completed sale ────────────────────────────────────────────────

@dataclass(frozen=True)
class CompletedSale:
    """A finalised sale. Never mutated after creation."""
    id:               str
    timestamp:        datetime
    lines:            Tuple[SaleLineItem, ...]
    customer_name:    str
    customer_phone:   str
    customer_address: str
    subtotal:         Decimal
    total_discount:   Decimal
    total_tax:        Decimal
    grand_total:      Decimal
    payment_method:   PaymentMethod
    notes:            str

    @classmethod
    def from_draft(cls, draft: SaleDraft, sale_id: str, timestamp: datetime) -> 'CompletedSale':
        totals = draft.totals
        return cls(
            id=sale_id,
            timestamp=timestamp,
            lines=tuple(replace(line) for line in draft.lines),
            customer_name=draft.customer_name,
            customer_phone=draft.customer_phone,
            customer_address=draft.customer_address,
            subtotal=totals['subtotal'],
            total_discount=totals['total_discount'],
            total_tax=totals['total_tax'],
            grand_total=totals['grand_total'],
            payment_method=draft.payment_method,
            notes=draft.notes,
        )

    def to_dict(self) -> dict:
        return {
            'id':               self.id,
            'date':             self.timestamp.isoformat(),
            'lines':            [line.to_dict() for line in self.lines],
            'customer_name':    self.customer_name,
            'customer_phone':   self.customer_phone,
            'customer_address': self.customer_address,
            'subtotal':         str(self.subtotal),
            'total_discount':   str(self.total_discount),
            'total_tax':        str(self.total_tax),
            'grand_total':      str(self.grand_total),
            'payment_method':   self.payment_method.value,
            'notes':            self.notes,
        }
