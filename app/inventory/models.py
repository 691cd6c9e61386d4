from decimal import Decimal
from datetime import datetime
from app import db

# ── Central threshold — used when no app config is available ─────
LOW_STOCK_THRESHOLD = 5


class InventoryItem(db.Model):
    """A stocked catalog item."""
    __tablename__ = 'inventory_items'

    id              = db.Column(db.Integer, primary_key=True)
    item_code       = db.Column(db.String(100), nullable=False, index=True)
    item_name       = db.Column(db.String(200), nullable=False, index=True)
    barcode         = db.Column(db.String(100), unique=True, nullable=True, index=True)
    division        = db.Column(db.String(100), nullable=False, default='')
    brand           = db.Column(db.String(100), nullable=False, default='')
    base_unit       = db.Column(db.String(20), nullable=False, default='PCS')
    mrp             = db.Column(db.Numeric(12, 2), nullable=False)
    gst_percent     = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    opening_stock   = db.Column(db.Integer, nullable=False, default=0)
    available_stock = db.Column(db.Integer, nullable=False, default=0)
    status          = db.Column(db.String(20), nullable=False, default='Active', index=True)
    created_at      = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at      = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    __table_args__ = (
        db.CheckConstraint('available_stock >= 0', name='check_available_stock_non_negative'),
        db.CheckConstraint('mrp >= 0', name='check_mrp_non_negative'),
    )

    # ── Computed helpers ──────────────────────────────────────────
    @property
    def is_low_stock(self) -> bool:
        """At or below 20 % of opening stock, or the absolute threshold."""
        if self.opening_stock:
            return self.available_stock <= Decimal('0.2') * self.opening_stock
        return self.available_stock <= LOW_STOCK_THRESHOLD

    @property
    def is_active(self) -> bool:
        return self.status == 'Active'

    def to_ref(self):
        """Snapshot used by sale lines (see app.sales.cart.InventoryItemRef)."""
        from app.sales.cart import InventoryItemRef
        return InventoryItemRef(
            id=self.id,
            code=self.item_code,
            name=self.item_name,
            unit=self.base_unit,
            mrp=Decimal(str(self.mrp)),
        )

    def to_dict(self) -> dict:
        return {
            'id':              self.id,
            'item_code':       self.item_code,
            'item_name':       self.item_name,
            'barcode':         self.barcode,
            'division':        self.division,
            'brand':           self.brand,
            'base_unit':       self.base_unit,
            'mrp':             str(self.mrp),
            'gst_percent':     str(self.gst_percent),
            'opening_stock':   self.opening_stock,
            'available_stock': self.available_stock,
            'status':          self.status,
            'is_low_stock':    self.is_low_stock,
        }

    def __repr__(self):
        return f"<InventoryItem {self.item_code!r} {self.item_name!r}>"


class InventoryLog(db.Model):
    """
    Audit trail for stock changes.
    Tracks old vs new stock and why it changed.
    """
    __tablename__ = 'inventory_logs'

    id          = db.Column(db.Integer, primary_key=True)
    item_id     = db.Column(db.Integer, db.ForeignKey('inventory_items.id'), nullable=False)
    old_stock   = db.Column(db.Integer, nullable=False)
    new_stock   = db.Column(db.Integer, nullable=False)
    reason      = db.Column(db.String(255), nullable=False)
    timestamp   = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    item = db.relationship('InventoryItem', backref=db.backref('logs', lazy='select'))

    def __repr__(self):
        return f"<Log Item:{self.item_id} {self.old_stock}->{self.new_stock} ({self.reason})>"
