"""
app/sales/receipt.py
--------------------
Receipts for completed sales: a fixed-width text slip for the counter
printer, a printable HTML page, and a JSON export that can be imported
back. None of these touch the sale itself; render as often as needed.
"""
import json
from datetime import datetime
from decimal import Decimal

from flask import render_template

from app.errors import ValidationError
from app.sales.cart import CompletedSale, PaymentMethod, SaleLineItem, cart_totals
from app.sales.pricing import to_decimal

WIDTH = 48


def _fit(text: str, width: int) -> str:
    text = text or ''
    return text if len(text) <= width else text[:width - 3] + '...'


class ReceiptEmitter:

    def __init__(self, business_name='Counter POS', address='', phone='', currency='₹'):
        self.business_name = business_name
        self.address = address
        self.phone = phone
        self.currency = currency

    @classmethod
    def from_config(cls, config) -> 'ReceiptEmitter':
        return cls(
            business_name=config.get('BUSINESS_NAME', 'Counter POS'),
            address=config.get('BUSINESS_ADDRESS', ''),
            phone=config.get('BUSINESS_PHONE', ''),
            currency=config.get('CURRENCY_SYMBOL', '₹'),
        )

    def fmt(self, amount: Decimal) -> str:
        sign = '-' if amount < 0 else ''
        return f'{sign}{self.currency}{abs(amount):,.2f}'

    # ── Text slip ─────────────────────────────────────────────────
    def render(self, sale: CompletedSale) -> str:
        out = [self.business_name.center(WIDTH)]
        for extra in (self.address, self.phone):
            if extra:
                out.append(_fit(extra, WIDTH).center(WIDTH))
        out.append('=' * WIDTH)
        out.append(f'Bill No : {sale.id}')
        out.append(f'Date    : {sale.timestamp:%d %b %Y %H:%M}')
        out.append(f'Payment : {sale.payment_method.value}')
        out.append(f'Customer: {_fit(sale.customer_name, WIDTH - 10)}')
        if sale.customer_phone:
            out.append(f'Phone   : {_fit(sale.customer_phone, WIDTH - 10)}')
        if sale.customer_address:
            out.append(f'Address : {_fit(sale.customer_address, WIDTH - 10)}')
        out.append('-' * WIDTH)
        out.append(f'{"Item":<20}{"Qty":>5}{"MRP":>11}{"Total":>12}')
        out.append('-' * WIDTH)
        for line in sale.lines:
            out.append(f'{_fit(line.item.name, 20):<20}{line.quantity:>5}'
                       f'{line.unit_price:>11,.2f}{line.line_total:>12,.2f}')
            if line.discount_amount:
                out.append(f'  Dividend {line.discount.label}  -{line.discount_amount:,.2f}')
        out.append('-' * WIDTH)
        out.append(self._total_row('Subtotal', sale.subtotal))
        out.append(self._total_row('Discount', -sale.total_discount))
        out.append(self._total_row('Tax', sale.total_tax))
        out.append(self._total_row('GRAND TOTAL', sale.grand_total))
        if sale.notes:
            out.append('-' * WIDTH)
            out.append(_fit(f'Notes: {sale.notes}', WIDTH))
        out.append('=' * WIDTH)
        out.append('Thank you!'.center(WIDTH))
        return '\n'.join(out) + '\n'

    def _total_row(self, label, amount) -> str:
        value = self.fmt(amount)
        return f'{label}{value:>{WIDTH - len(label)}}'

    # ── HTML page ─────────────────────────────────────────────────
    def render_html(self, sale: CompletedSale) -> str:
        """Printable page; needs an application context."""
        return render_template('sales/receipt.html', sale=sale, receipt=self,
                               title=f'Bill {sale.id}')

    # ── JSON export / import ──────────────────────────────────────
    def export_json(self, sale: CompletedSale) -> str:
        return json.dumps(sale.to_dict(), indent=2, ensure_ascii=False)


def import_sale_json(raw: str) -> CompletedSale:
    """
    Parse a sale exported by export_json(). Totals are recomputed from the
    lines and must match the recorded ones.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        raise ValidationError('Invalid sale data format.')
    if not isinstance(data, dict) or not isinstance(data.get('lines'), list) or not data['lines']:
        raise ValidationError('Invalid sale data format.')
    if not data.get('id') or not (data.get('customer_name') or '').strip():
        raise ValidationError('Imported sale needs an id and a customer name.')

    try:
        lines = tuple(SaleLineItem.from_dict(line) for line in data['lines'])
        timestamp = datetime.fromisoformat(data['date'])
        recorded = {key: to_decimal(data[key])
                    for key in ('subtotal', 'total_discount', 'total_tax', 'grand_total')}
    except (KeyError, TypeError, ValueError, ArithmeticError):
        raise ValidationError('Invalid sale data format.')

    totals = cart_totals(lines)
    for key in ('subtotal', 'total_discount', 'grand_total'):
        if totals[key] != recorded[key]:
            raise ValidationError(f'Imported sale {key} does not match its lines.')

    return CompletedSale(
        id=str(data['id']),
        timestamp=timestamp,
        lines=lines,
        customer_name=data['customer_name'].strip(),
        customer_phone=data.get('customer_phone') or '',
        customer_address=data.get('customer_address') or '',
        subtotal=totals['subtotal'],
        total_discount=totals['total_discount'],
        total_tax=totals['total_tax'],
        grand_total=totals['grand_total'],
        payment_method=PaymentMethod.parse(data.get('payment_method') or 'Cash'),
        notes=data.get('notes') or '',
    )
