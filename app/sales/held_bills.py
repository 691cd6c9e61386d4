"""
app/sales/held_bills.py
-----------------------
Persistence for held (suspended) bills.

Every store offers the same three calls:

    save(bill)          insert, or overwrite a bill with the same id
    list_all()          all bills in insertion order
    delete_by_id(id)    remove one bill; an unknown id is not an error

Failures are raised as StoreAdapterError so the lifecycle can leave its
cache untouched. SqlHeldBillStore is the authoritative store;
InMemoryHeldBillStore keeps bills in the worker process;
FallbackHeldBillStore puts the second behind the first for terminals that
must keep holding bills while the database is down.
"""
from __future__ import annotations
import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.errors import StoreAdapterError
from app.sales.cart import SaleDraft
from app.sales.models import HeldBillRecord

logger = logging.getLogger(__name__)

DEFAULT_CUSTOMER = 'Customer'


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class HeldBill:
    id:            str
    timestamp:     int          # epoch milliseconds
    customer_name: str
    snapshot:      SaleDraft

    @classmethod
    def from_draft(cls, draft: SaleDraft, timestamp: Optional[int] = None) -> 'HeldBill':
        ts = timestamp if timestamp is not None else _now_ms()
        return cls(
            id=f'heldBill_{ts}_{uuid.uuid4().hex[:6]}',
            timestamp=ts,
            customer_name=draft.customer_name or DEFAULT_CUSTOMER,
            snapshot=draft.snapshot(),
        )

    def to_dict(self) -> dict:
        snapshot = self.snapshot.to_dict()
        totals = self.snapshot.totals
        return {
            'id':            self.id,
            'timestamp':     self.timestamp,
            'customer_name': self.customer_name,
            'item_count':    totals['item_count'],
            'grand_total':   str(totals['grand_total']),
            'snapshot':      snapshot,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'HeldBill':
        return cls(
            id=data['id'],
            timestamp=int(data['timestamp']),
            customer_name=data.get('customer_name') or DEFAULT_CUSTOMER,
            snapshot=SaleDraft.from_dict(data.get('snapshot')),
        )


class HeldBillStore(ABC):

    @abstractmethod
    def save(self, bill: HeldBill) -> None:
        ...

    @abstractmethod
    def list_all(self) -> List[HeldBill]:
        ...

    @abstractmethod
    def delete_by_id(self, bill_id: str) -> None:
        ...


# ── Database ──────────────────────────────────────────────────────

class SqlHeldBillStore(HeldBillStore):
    """held_bills table; the snapshot is kept as a JSON document."""

    def save(self, bill: HeldBill) -> None:
        try:
            record = db.session.get(HeldBillRecord, bill.id)
            if record is None:
                record = HeldBillRecord(id=bill.id)
                db.session.add(record)
            record.customer_name = bill.customer_name
            record.timestamp = bill.timestamp
            record.snapshot = bill.snapshot.to_dict()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error(f"Failed to save held bill {bill.id}: {exc}")
            raise StoreAdapterError('Failed to hold the bill.') from exc

    def list_all(self) -> List[HeldBill]:
        try:
            records = (
                HeldBillRecord.query
                .order_by(HeldBillRecord.created_at.asc(), HeldBillRecord.timestamp.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error(f"Failed to load held bills: {exc}")
            raise StoreAdapterError('Failed to load held bills.') from exc
        return [
            HeldBill(
                id=r.id,
                timestamp=r.timestamp,
                customer_name=r.customer_name,
                snapshot=SaleDraft.from_dict(r.snapshot),
            )
            for r in records
        ]

    def delete_by_id(self, bill_id: str) -> None:
        try:
            HeldBillRecord.query.filter_by(id=bill_id).delete()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error(f"Failed to delete held bill {bill_id}: {exc}")
            raise StoreAdapterError('Failed to delete the held bill.') from exc


# ── Process-local ─────────────────────────────────────────────────

class InMemoryHeldBillStore(HeldBillStore):
    """Bills kept as plain dicts so callers can't mutate stored snapshots."""

    def __init__(self):
        self._bills = {}
        self._lock = threading.Lock()

    def save(self, bill: HeldBill) -> None:
        with self._lock:
            self._bills[bill.id] = bill.to_dict()

    def list_all(self) -> List[HeldBill]:
        with self._lock:
            stored = list(self._bills.values())
        return [HeldBill.from_dict(data) for data in stored]

    def delete_by_id(self, bill_id: str) -> None:
        with self._lock:
            self._bills.pop(bill_id, None)

    def __len__(self):
        return len(self._bills)


# ── Fallback decorator ────────────────────────────────────────────

class FallbackHeldBillStore(HeldBillStore):
    """
    Primary store first; when it raises StoreAdapterError the call is
    served by the local store instead. Bills that landed locally are
    listed alongside the primary's and pushed to it by sync().
    """

    def __init__(self, primary: HeldBillStore, local: HeldBillStore):
        self.primary = primary
        self.local = local

    def save(self, bill: HeldBill) -> None:
        try:
            self.primary.save(bill)
        except StoreAdapterError:
            logger.warning(f"Primary held-bill store unavailable; keeping {bill.id} locally.")
            self.local.save(bill)

    def list_all(self) -> List[HeldBill]:
        pending = self.local.list_all()
        try:
            bills = self.primary.list_all()
        except StoreAdapterError:
            logger.warning("Primary held-bill store unavailable; listing local bills only.")
            return pending
        known = {b.id for b in bills}
        return bills + [b for b in pending if b.id not in known]

    def delete_by_id(self, bill_id: str) -> None:
        was_local = any(b.id == bill_id for b in self.local.list_all())
        self.local.delete_by_id(bill_id)
        try:
            self.primary.delete_by_id(bill_id)
        except StoreAdapterError:
            if not was_local:
                raise
            logger.warning(f"Held bill {bill_id} removed locally; primary store unavailable.")

    def sync(self) -> int:
        """Move locally held bills into the primary store. Returns how many moved."""
        moved = 0
        for bill in self.local.list_all():
            self.primary.save(bill)
            self.local.delete_by_id(bill.id)
            moved += 1
        if moved:
            logger.info(f"Synced {moved} locally held bill(s) to the primary store.")
        return moved


def build_held_bill_store(app) -> HeldBillStore:
    """Store selected by HELD_BILL_STORE / HELD_BILL_LOCAL_FALLBACK."""
    kind = app.config.get('HELD_BILL_STORE', 'sql')
    if kind == 'memory':
        return InMemoryHeldBillStore()
    if kind != 'sql':
        raise ValueError(f'Unknown HELD_BILL_STORE "{kind}".')

    store = SqlHeldBillStore()
    if app.config.get('HELD_BILL_LOCAL_FALLBACK'):
        return FallbackHeldBillStore(store, InMemoryHeldBillStore())
    return store
