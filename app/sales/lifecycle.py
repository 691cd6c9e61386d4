"""
app/sales/lifecycle.py
----------------------
Drives one SaleSession through its transitions:

    building ──process──▶ completed     (stock deducted, record stored, receipt rendered)
    building ──hold─────▶ held          (snapshot stored, draft reset)
    held     ──resume───▶ building      (snapshot loaded, bill removed)
    held     ──delete───▶ gone

Collaborators are passed in, never looked up:

    gateway     .sell(item_id, quantity)
    store       .save(bill) / .list_all() / .delete_by_id(bill_id)
    repository  .record(draft, timestamp) -> CompletedSale
    emitter     .render(sale) -> receipt

Processing is NOT atomic: lines are sold one at a time in cart order, and
when a line fails the lines before it stay deducted. The raised
GatewayError lists them under payload['applied'] so they can be
reconciled by hand.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from app.errors import GatewayError, NotFoundError, StoreAdapterError, ValidationError
from app.sales.cart import CompletedSale
from app.sales.held_bills import HeldBill
from app.sales.session import SaleSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResumeOutcome:
    bill:    HeldBill
    removed: bool          # False → bill is still in the store (orphan)


class SaleLifecycle:

    def __init__(self, session: SaleSession, gateway, store, repository, emitter):
        self.session = session
        self.gateway = gateway
        self.store = store
        self.repository = repository
        self.emitter = emitter

    @property
    def draft(self):
        return self.session.draft

    # ── Process ───────────────────────────────────────────────────

    def process(self, now: Optional[datetime] = None) -> Tuple[CompletedSale, object]:
        """Sell every line, store the sale, render its receipt, reset the draft."""
        draft = self.draft
        if draft.is_empty:
            raise ValidationError('Please add at least one item to the sale.')
        if not draft.customer_name.strip():
            raise ValidationError('Please enter customer name.')

        with self.session.operation('process'):
            applied = []
            for position, line in enumerate(draft.lines):
                try:
                    self.gateway.sell(line.item.id, line.quantity)
                except (GatewayError, StoreAdapterError) as exc:
                    if applied:
                        logger.warning(
                            f"Sale aborted at line {position + 1} ({line.item.code}); "
                            f"stock already deducted for {applied}"
                        )
                    exc.payload = dict(exc.payload or {}, applied=applied, failed_line=position)
                    raise
                applied.append({'item_id': line.item.id, 'quantity': line.quantity})

            sale = self.repository.record(draft.snapshot(), now or datetime.utcnow())
            receipt = self.emitter.render(sale)
            draft.reset()

        logger.info(f"Sale {sale.id} completed for {sale.customer_name!r} | Total: {sale.grand_total}")
        return sale, receipt

    # ── Hold ──────────────────────────────────────────────────────

    def hold(self, timestamp: Optional[int] = None) -> HeldBill:
        """Store the draft as a held bill and start a fresh one."""
        if self.draft.is_empty:
            raise ValidationError('There are no items to hold.')

        with self.session.operation('hold'):
            bill = HeldBill.from_draft(self.draft, timestamp)
            self.store.save(bill)
            self.session.held_bills.append(bill)
            self.draft.reset()

        logger.info(f"Held bill {bill.id} for {bill.customer_name!r}")
        return bill

    # ── Resume ────────────────────────────────────────────────────

    def resume(self, bill_id: Optional[str] = None) -> ResumeOutcome:
        """
        Replace the draft with a held bill's snapshot and remove the bill.
        Without an id the most recent held bill is resumed.

        Whatever was in the draft is overwritten; callers confirm first.
        """
        with self.session.operation('resume'):
            bill = self._find(bill_id) if bill_id else self.latest_held_bill(include_dismissed=True)
            if bill is None:
                raise NotFoundError('There is no held bill to resume.')

            self.session.draft = bill.snapshot.snapshot()
            if self.session.dismissed_prompt_id == bill.id:
                self.session.dismissed_prompt_id = None

            try:
                self.store.delete_by_id(bill.id)
            except StoreAdapterError:
                logger.warning(f"Held bill {bill.id} resumed but could not be removed from the store")
                return ResumeOutcome(bill, removed=False)

            self._forget(bill.id)

        logger.info(f"Resumed held bill {bill.id}")
        return ResumeOutcome(bill, removed=True)

    # ── Delete ────────────────────────────────────────────────────

    def delete(self, bill_id: str) -> None:
        """Discard a held bill. On failure it stays listed so the user can retry."""
        with self.session.operation('delete'):
            self.store.delete_by_id(bill_id)
            self._forget(bill_id)
        logger.info(f"Deleted held bill {bill_id}")

    # ── Held-bill list ────────────────────────────────────────────

    def refresh_held_bills(self) -> List[HeldBill]:
        self.session.held_bills = list(self.store.list_all())
        return self.held_bills()

    def held_bills(self) -> List[HeldBill]:
        """Most recent first; bills held in the same millisecond, last stored first."""
        return sorted(reversed(self.session.held_bills), key=lambda b: b.timestamp, reverse=True)

    def latest_held_bill(self, include_dismissed: bool = False) -> Optional[HeldBill]:
        """
        The bill behind the "resume your last bill?" prompt, or None when
        there is none or the prompt was dismissed for it.
        """
        bills = self.held_bills()
        if not bills:
            return None
        latest = bills[0]
        if not include_dismissed and latest.id == self.session.dismissed_prompt_id:
            return None
        return latest

    def dismiss_prompt(self) -> None:
        """Hide the prompt for the current latest bill; the bill itself is kept."""
        latest = self.latest_held_bill(include_dismissed=True)
        self.session.dismissed_prompt_id = latest.id if latest else None

    # ── Internals ─────────────────────────────────────────────────

    def _find(self, bill_id: str) -> HeldBill:
        for bill in self.session.held_bills:
            if bill.id == bill_id:
                return bill
        # Not cached (e.g. held from another terminal) — ask the store.
        for bill in self.store.list_all():
            if bill.id == bill_id:
                return bill
        raise NotFoundError('The requested bill could not be found.')

    def _forget(self, bill_id: str) -> None:
        self.session.held_bills = [b for b in self.session.held_bills if b.id != bill_id]
