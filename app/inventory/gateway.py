"""
app/inventory/gateway.py
------------------------
Stock mutations and catalog lookups against the inventory tables.

Every sell()/add_stock() call is its own transaction:

1. Lock the item row with SELECT … FOR UPDATE
2. Check the quantity (sell only)
3. Write the new stock + an InventoryLog row
4. Commit

so a refused call never leaves a partial decrement behind. Several calls
in a row (one per sale line) are NOT atomic as a group — the caller owns
that decision.
"""
import logging

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.errors import ItemNotFoundError, InsufficientStockError, StoreAdapterError, ValidationError
from app.inventory.models import InventoryItem, InventoryLog

logger = logging.getLogger(__name__)


class SqlStockGateway:
    """Adjusts InventoryItem.available_stock, one item per call."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def sell(self, item_id: int, quantity: int, reason: str = 'Sale Deduction') -> InventoryItem:
        """Deduct `quantity` units. Raises ItemNotFoundError / InsufficientStockError."""
        if quantity < 1:
            raise ValidationError('Quantity must be at least 1.')

        item = self._lock(item_id)
        if item.available_stock < quantity:
            self.session.rollback()
            raise InsufficientStockError(item.item_name, quantity, item.available_stock)

        return self._apply(item, -quantity, reason)

    def add_stock(self, item_id: int, quantity: int, reason: str = 'Stock Added') -> InventoryItem:
        if quantity < 1:
            raise ValidationError('Quantity must be at least 1.')
        item = self._lock(item_id)
        return self._apply(item, quantity, reason)

    # ── Internals ─────────────────────────────────────────────────
    def _lock(self, item_id) -> InventoryItem:
        try:
            item = (
                self.session.query(InventoryItem)
                .filter(InventoryItem.id == item_id)
                .with_for_update()
                .first()
            )
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"Stock lookup failed for item {item_id}: {exc}")
            raise StoreAdapterError('Inventory store is unavailable.') from exc

        if item is None:
            self.session.rollback()
            raise ItemNotFoundError(item_id)
        return item

    def _apply(self, item: InventoryItem, delta: int, reason: str) -> InventoryItem:
        old_stock = item.available_stock
        item.available_stock = old_stock + delta
        self.session.add(InventoryLog(
            item_id=item.id,
            old_stock=old_stock,
            new_stock=item.available_stock,
            reason=reason,
        ))
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"Stock update failed for item {item.id}: {exc}")
            raise StoreAdapterError('Could not update stock. Please try again.') from exc

        logger.info(f"Stock {item.item_code}: {old_stock} -> {item.available_stock} ({reason})")
        return item


class SqlCatalog:
    """Read-only catalog lookup feeding InventoryItemRef snapshots into carts."""

    def __init__(self, default_limit: int = 20):
        self.default_limit = default_limit

    def search(self, query: str, limit: int = None) -> list:
        """InventoryItemRef for every match of search_items()."""
        return [item.to_ref() for item in self.search_items(query, limit)]

    def search_items(self, query: str, limit: int = None) -> list:
        """Active items whose name, code or barcode contains `query`."""
        query = (query or '').strip()
        items = InventoryItem.query.filter(InventoryItem.status == 'Active')
        if query:
            pattern = f'%{query}%'
            items = items.filter(or_(
                InventoryItem.item_name.ilike(pattern),
                InventoryItem.item_code.ilike(pattern),
                InventoryItem.barcode.ilike(pattern),
            ))
        return items.order_by(InventoryItem.item_name.asc()).limit(limit or self.default_limit).all()

    def get(self, item_id: int) -> InventoryItem:
        item = db.session.get(InventoryItem, item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item
