"""
app/sales/records.py
--------------------
Stores CompletedSale records in the sales / sale_lines tables and reads
them back as CompletedSale objects.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List

from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.errors import NotFoundError, StoreAdapterError
from app.sales.cart import CompletedSale, InventoryItemRef, PaymentMethod, SaleDraft, SaleLineItem
from app.sales.invoice import next_sale_number
from app.sales.models import Sale, SaleLine
from app.sales.pricing import make_discount

logger = logging.getLogger(__name__)


class SqlSaleRepository:

    def record(self, draft: SaleDraft, timestamp: datetime = None) -> CompletedSale:
        """Number, build and store the sale for `draft` in one transaction."""
        timestamp = timestamp or datetime.utcnow()
        try:
            number = next_sale_number(db.session, timestamp.year)
            sale = CompletedSale.from_draft(draft, number, timestamp)
            self._add(sale)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error(f"Failed to record sale: {exc}")
            raise StoreAdapterError('Stock was updated but the sale record could not be saved.') from exc
        return sale

    def add(self, sale: CompletedSale) -> CompletedSale:
        """Store a sale that already has its number (e.g. an imported export)."""
        try:
            self._add(sale)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error(f"Failed to store sale {sale.id}: {exc}")
            raise StoreAdapterError(f'Could not store sale {sale.id}.') from exc
        return sale

    def exists(self, sale_id: str) -> bool:
        return Sale.query.filter_by(number=sale_id).first() is not None

    def get(self, sale_id: str) -> CompletedSale:
        row = Sale.query.filter_by(number=sale_id).first()
        if row is None:
            raise NotFoundError(f'Sale {sale_id} not found.')
        return _to_completed(row)

    def recent(self, limit: int = 20) -> List[CompletedSale]:
        rows = Sale.query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()
        return [_to_completed(row) for row in rows]

    def _add(self, sale: CompletedSale) -> None:
        row = Sale(
            number=sale.id,
            customer_name=sale.customer_name,
            customer_phone=sale.customer_phone,
            customer_address=sale.customer_address,
            subtotal=sale.subtotal,
            total_discount=sale.total_discount,
            total_tax=sale.total_tax,
            grand_total=sale.grand_total,
            payment_method=sale.payment_method.value,
            notes=sale.notes,
            created_at=sale.timestamp,
        )
        for position, line in enumerate(sale.lines):
            row.lines.append(SaleLine(
                position=position,
                item_id=line.item.id,
                item_code=line.item.code,
                item_name=line.item.name,
                unit=line.item.unit,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount_type=line.discount.kind.value,
                discount_value=line.discount.value,
                line_total=line.line_total,
            ))
        db.session.add(row)


def _to_completed(row: Sale) -> CompletedSale:
    lines = tuple(
        SaleLineItem(
            item=InventoryItemRef(
                id=line.item_id,
                code=line.item_code,
                name=line.item_name,
                unit=line.unit,
                mrp=Decimal(str(line.unit_price)),
            ),
            quantity=line.quantity,
            unit_price=Decimal(str(line.unit_price)),
            discount=make_discount(line.discount_type, Decimal(str(line.discount_value))),
        )
        for line in row.lines
    )
    return CompletedSale(
        id=row.number,
        timestamp=row.created_at,
        lines=lines,
        customer_name=row.customer_name,
        customer_phone=row.customer_phone,
        customer_address=row.customer_address,
        subtotal=Decimal(str(row.subtotal)),
        total_discount=Decimal(str(row.total_discount)),
        total_tax=Decimal(str(row.total_tax)),
        grand_total=Decimal(str(row.grand_total)),
        payment_method=PaymentMethod.parse(row.payment_method),
        notes=row.notes,
    )
