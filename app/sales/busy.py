"""
app/sales/busy.py
-----------------
Busy flags kept in the busy_flags table, so every gunicorn worker sees
the same ones. A terminal's requests may land on any worker; the flag for
(terminal, operation) is a row that exists while the operation runs.

A row older than BUSY_FLAG_TIMEOUT seconds was left behind by a worker
that died mid-operation and is taken over by the next acquire().
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app import db
from app.errors import BusyError, StoreAdapterError
from app.sales.models import BusyFlagRecord
from app.sales.session import OPERATIONS, BusyBoard

logger = logging.getLogger(__name__)


class SqlBusyFlags:
    """Same calls as session.BusyFlags, backed by one row per running operation."""

    def __init__(self, terminal_id: str, timeout: int = 120):
        self.terminal_id = terminal_id
        self.timeout = timeout

    def _cutoff(self) -> datetime:
        return datetime.utcnow() - timedelta(seconds=self.timeout)

    def acquire(self, operation: str) -> None:
        if operation not in OPERATIONS:
            raise ValueError(f'Unknown operation "{operation}".')
        try:
            stale = db.session.execute(
                delete(BusyFlagRecord).where(
                    BusyFlagRecord.terminal_id == self.terminal_id,
                    BusyFlagRecord.operation == operation,
                    BusyFlagRecord.acquired_at < self._cutoff(),
                )
            ).rowcount
            db.session.execute(insert(BusyFlagRecord).values(
                terminal_id=self.terminal_id,
                operation=operation,
                acquired_at=datetime.utcnow(),
            ))
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise BusyError(operation)
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error(f"Could not set busy flag {operation} for {self.terminal_id}: {exc}")
            raise StoreAdapterError('Could not start the operation. Please try again.') from exc

        if stale:
            logger.warning(f"Took over an expired {operation} flag for terminal {self.terminal_id}")

    def release(self, operation: str) -> None:
        """Runs in a finally block, so failures are logged; the row expires on its own."""
        try:
            db.session.execute(delete(BusyFlagRecord).where(
                BusyFlagRecord.terminal_id == self.terminal_id,
                BusyFlagRecord.operation == operation,
            ))
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error(f"Could not clear busy flag {operation} for {self.terminal_id}: {exc}")

    def is_set(self, operation: Optional[str] = None) -> bool:
        query = select(BusyFlagRecord.operation).where(
            BusyFlagRecord.terminal_id == self.terminal_id,
            BusyFlagRecord.acquired_at >= self._cutoff(),
        )
        if operation is not None:
            query = query.where(BusyFlagRecord.operation == operation)
        return db.session.execute(query.limit(1)).first() is not None


class SqlBusyBoard:

    def __init__(self, timeout: int = 120):
        self.timeout = timeout

    def flags_for(self, session_id: str) -> SqlBusyFlags:
        return SqlBusyFlags(session_id, self.timeout)

    def forget(self, session_id: str) -> None:
        db.session.execute(delete(BusyFlagRecord).where(BusyFlagRecord.terminal_id == session_id))
        db.session.commit()


def build_busy_board(app):
    """Board selected by BUSY_FLAGS: 'sql' (shared) or 'memory' (single worker)."""
    kind = app.config.get('BUSY_FLAGS', 'sql')
    if kind == 'memory':
        return BusyBoard()
    if kind != 'sql':
        raise ValueError(f'Unknown BUSY_FLAGS "{kind}".')
    return SqlBusyBoard(timeout=app.config.get('BUSY_FLAG_TIMEOUT', 120))
