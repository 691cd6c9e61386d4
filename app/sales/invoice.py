"""
app/sales/invoice.py
--------------------
Sale numbers, one series per calendar year.

Format:  YYYY-NNNN
Example: 2026-0001, 2026-0002, … 2026-9999, 2026-10000

The SaleSequence row for the year is locked with SELECT … FOR UPDATE,
incremented and flushed. The lock is released when the caller commits the
sale, so the number only advances when the sale is actually stored and a
rolled-back sale leaves no gap.
"""
from datetime import datetime


def next_sale_number(db_session, year: int = None) -> str:
    """
    Reserve the next sale number for `year` (default: this year).

    MUST be called inside an open SQLAlchemy transaction.
    """
    from app.sales.models import SaleSequence

    year = year or datetime.now().year

    seq_row = (
        db_session.query(SaleSequence)
        .filter(SaleSequence.year == year)
        .with_for_update()
        .first()
    )

    if seq_row is None:
        # First sale of the year
        seq_row = SaleSequence(year=year, last_seq=0)
        db_session.add(seq_row)
        db_session.flush()

        seq_row = (
            db_session.query(SaleSequence)
            .filter(SaleSequence.year == year)
            .with_for_update()
            .first()
        )

    seq_row.last_seq += 1
    db_session.flush()

    # Zero-pad to 4 digits; grows naturally beyond 4 for high-volume years
    return f"{year}-{seq_row.last_seq:04d}"
