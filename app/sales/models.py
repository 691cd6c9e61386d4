from datetime import datetime
from decimal import Decimal
from app import db
from app.sales.pricing import DISCOUNT_PLACES


class SaleSequence(db.Model):
    """
    One row per calendar year — holds the last-used sale number.

    Sale numbers come from this row rather than COUNT(sales) so two
    terminals finishing a sale at the same moment can't both get the
    same number:

        Tx A: locks row, reads last_seq=15, writes 16, commits  ┐ serialised
        Tx B: blocks until Tx A commits, reads 16, writes 17    ┘
    """
    __tablename__ = 'sale_sequences'

    year     = db.Column(db.Integer, primary_key=True)
    last_seq = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<SaleSequence year={self.year} last_seq={self.last_seq}>"


class Sale(db.Model):
    """
    One completed sale. Totals are stored as computed at the counter so
    the record never changes when catalog prices do.
    """
    __tablename__ = 'sales'

    id               = db.Column(db.Integer, primary_key=True)
    number           = db.Column(db.String(40), unique=True, nullable=False, index=True)
    customer_name    = db.Column(db.String(200), nullable=False)
    customer_phone   = db.Column(db.String(40), nullable=False, default='')
    customer_address = db.Column(db.String(500), nullable=False, default='')
    subtotal         = db.Column(db.Numeric(12, 2), nullable=False)
    total_discount   = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_tax        = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    grand_total      = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method   = db.Column(db.String(20), nullable=False, default='Cash')
    notes            = db.Column(db.Text, nullable=False, default='')
    created_at       = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    # ── Relationships ─────────────────────────────────────────────
    lines = db.relationship('SaleLine', backref='sale', lazy='select',
                            order_by='SaleLine.position',
                            cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Sale {self.number!r} {self.grand_total}>"


class SaleLine(db.Model):
    """
    One line of a Sale. Keeps a snapshot of the item and its discount;
    item_id is informational and not a foreign key, since catalog items
    may be deleted after they were sold.
    """
    __tablename__ = 'sale_lines'

    id             = db.Column(db.Integer, primary_key=True)
    sale_id        = db.Column(db.Integer, db.ForeignKey('sales.id'), nullable=False, index=True)
    position       = db.Column(db.Integer, nullable=False)
    item_id        = db.Column(db.Integer, nullable=False)
    item_code      = db.Column(db.String(100), nullable=False, default='')
    item_name      = db.Column(db.String(200), nullable=False)
    unit           = db.Column(db.String(20), nullable=False, default='')
    quantity       = db.Column(db.Integer, nullable=False)
    unit_price     = db.Column(db.Numeric(12, 2), nullable=False)
    discount_type  = db.Column(db.String(20), nullable=False, default='none')
    discount_value = db.Column(db.Numeric(10, DISCOUNT_PLACES), nullable=False, default=0)
    line_total     = db.Column(db.Numeric(12, 2), nullable=False)

    __table_args__ = (
        db.CheckConstraint('quantity >= 1', name='check_sale_line_qty_positive'),
    )

    @property
    def discount_amount(self) -> Decimal:
        return Decimal(str(self.unit_price)) * self.quantity - Decimal(str(self.line_total))

    def __repr__(self):
        return f"<SaleLine sale={self.sale_id} item={self.item_id} qty={self.quantity}>"


class HeldBillRecord(db.Model):
    """A suspended draft, kept until it is resumed or deleted."""
    __tablename__ = 'held_bills'

    id            = db.Column(db.String(64), primary_key=True)
    customer_name = db.Column(db.String(200), nullable=False)
    timestamp     = db.Column(db.BigInteger, nullable=False, index=True)   # epoch milliseconds
    snapshot      = db.Column(db.JSON, nullable=False)
    created_at    = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<HeldBill {self.id!r} {self.customer_name!r}>"


class BusyFlagRecord(db.Model):
    """An operation in flight for one terminal. The row itself is the flag."""
    __tablename__ = 'busy_flags'

    terminal_id = db.Column(db.String(64), primary_key=True)
    operation   = db.Column(db.String(20), primary_key=True)
    acquired_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<BusyFlag {self.terminal_id!r} {self.operation!r}>"
