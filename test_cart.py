"""
test_cart.py — SaleDraft line operations, totals and completed sales.
Run: pytest test_cart.py -v
"""
import dataclasses
import pytest
from datetime import datetime
from decimal import Decimal

from app.errors import ValidationError
from app.sales.cart import (
    CompletedSale, InventoryItemRef, PaymentMethod, SaleDraft, cart_totals, reset_draft,
)
from app.sales.pricing import DiscountPolicy, compute_line_total


def make_item(item_id=1, mrp='100.00', name='Chyawanprash 500g'):
    return InventoryItemRef(id=item_id, code=f'IT{item_id:03d}', name=name,
                            unit='JAR', mrp=Decimal(mrp))


def filled_draft():
    draft = SaleDraft(customer_name='Asha Rao', customer_phone='9800000000')
    draft.add_line(make_item(1, '100.00'), 3, DiscountPolicy.percentage(10))
    draft.add_line(make_item(2, '90.00', 'Triphala Churna'), 2, DiscountPolicy.divisor(3))
    draft.add_line(make_item(3, '45.50', 'Tulsi Drops'), 1)
    return draft


# ── Line operations ───────────────────────────────────────────────

def test_add_line_prices_at_mrp():
    draft = SaleDraft()
    draft.add_line(make_item(mrp='245.00'), 2)

    line = draft.lines[0]
    assert line.unit_price == Decimal('245.00')
    assert line.discount == DiscountPolicy.none()
    assert line.line_total == Decimal('490.00')


def test_line_total_always_matches_pricing():
    draft = filled_draft()
    draft.update_quantity(0, 5)
    draft.update_discount(1, DiscountPolicy.percentage('12.5'))
    draft.remove_line(2)
    draft.add_line(make_item(4, '19.99'), 7, DiscountPolicy.divisor(2))

    for line in draft.lines:
        assert line.line_total == compute_line_total(line.unit_price, line.quantity, line.discount)


@pytest.mark.parametrize('quantity', [0, -1, '0', 'two', '2.5', True])
def test_bad_quantity_rejected(quantity):
    draft = filled_draft()
    with pytest.raises(ValidationError):
        draft.add_line(make_item(9), quantity)
    with pytest.raises(ValidationError):
        draft.update_quantity(0, quantity)
    assert len(draft.lines) == 3
    assert draft.lines[0].quantity == 3


def test_quantity_string_accepted():
    draft = SaleDraft()
    draft.add_line(make_item(), '4')
    assert draft.lines[0].quantity == 4


def test_switch_discount_variant():
    draft = filled_draft()
    draft.update_discount(0, DiscountPolicy.divisor(3))
    assert draft.lines[0].discount == DiscountPolicy.divisor(3)
    assert draft.lines[0].to_dict()['discount'] == {'type': 'divisor', 'value': '3'}
    assert draft.lines[0].line_total == Decimal('100.00')


def test_remove_line_shifts_later_lines():
    draft = filled_draft()
    draft.remove_line(0)
    assert [line.item.id for line in draft.lines] == [2, 3]


@pytest.mark.parametrize('index', [-1, 3, 99])
def test_bad_index_rejected(index):
    draft = filled_draft()
    with pytest.raises(ValidationError):
        draft.update_quantity(index, 1)
    with pytest.raises(ValidationError):
        draft.remove_line(index)
    assert len(draft.lines) == 3


def test_clear_keeps_customer_reset_does_not():
    draft = filled_draft()
    draft.set_notes('Deliver Friday')
    draft.clear()
    assert draft.is_empty
    assert draft.customer_name == 'Asha Rao'
    assert draft.notes == 'Deliver Friday'

    draft.reset()
    assert draft == reset_draft()


def test_customer_fields_trimmed():
    draft = SaleDraft()
    draft.update_customer(customer_name='  Ravi  ', customer_address=None)
    assert draft.customer_name == 'Ravi'
    assert draft.customer_address == ''
    with pytest.raises(ValidationError):
        draft.update_customer(customer_email='x@example.com')


@pytest.mark.parametrize('raw, expected', [
    ('upi', PaymentMethod.upi),
    ('Bank Transfer', PaymentMethod.bank_transfer),
    ('bank_transfer', PaymentMethod.bank_transfer),
    ('CARD', PaymentMethod.card),
])
def test_payment_method_parse(raw, expected):
    assert PaymentMethod.parse(raw) is expected


def test_unknown_payment_method():
    with pytest.raises(ValidationError):
        SaleDraft().set_payment_method('Cheque')


# ── Totals ────────────────────────────────────────────────────────

def test_totals_consistent():
    draft = filled_draft()
    totals = draft.totals
    # 300 + 180 + 45.50
    assert totals['subtotal'] == Decimal('525.50')
    # 270 + 60 + 45.50
    assert totals['grand_total'] == Decimal('375.50')
    assert totals['total_discount'] == Decimal('150.00')
    assert totals['total_tax'] == Decimal('0')
    assert totals['item_count'] == 6
    assert totals['subtotal'] - totals['total_discount'] == sum(l.line_total for l in draft.lines)


def test_empty_totals():
    totals = cart_totals([])
    assert totals['subtotal'] == totals['grand_total'] == Decimal('0')
    assert totals['item_count'] == 0


# ── Snapshots and serialisation ───────────────────────────────────

def test_snapshot_is_independent():
    draft = filled_draft()
    snap = draft.snapshot()
    draft.update_quantity(0, 9)
    draft.update_customer(customer_name='Someone Else')
    assert snap.lines[0].quantity == 3
    assert snap.customer_name == 'Asha Rao'


def test_draft_dict_form():
    draft = filled_draft()
    draft.set_payment_method('UPI')
    restored = SaleDraft.from_dict(draft.to_dict())
    assert restored == draft
    assert SaleDraft.from_dict(None) == SaleDraft()


def test_tampered_line_rejected_on_load():
    data = filled_draft().to_dict()
    data['lines'][0]['discount'] = {'type': 'divisor', 'value': '0.2'}
    with pytest.raises(ValidationError):
        SaleDraft.from_dict(data)


# ── Completed sale ────────────────────────────────────────────────

def test_completed_sale_freezes_draft():
    draft = filled_draft()
    sale = CompletedSale.from_draft(draft, '2026-0001', datetime(2026, 3, 1, 10, 30))

    draft.update_quantity(0, 10)
    assert sale.lines[0].quantity == 3
    assert sale.grand_total == Decimal('375.50')
    assert sale.subtotal - sale.total_discount + sale.total_tax == sale.grand_total

    with pytest.raises(dataclasses.FrozenInstanceError):
        sale.grand_total = Decimal('0')


def test_completed_sale_dict():
    sale = CompletedSale.from_draft(filled_draft(), '2026-0002', datetime(2026, 3, 1, 10, 30))
    data = sale.to_dict()
    assert data['id'] == '2026-0002'
    assert data['date'] == '2026-03-01T10:30:00'
    assert data['grand_total'] == '375.50'
    assert data['payment_method'] == 'Cash'
    assert len(data['lines']) == 3
