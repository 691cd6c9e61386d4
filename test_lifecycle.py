"""
test_lifecycle.py — process / hold / resume / delete against in-process fakes.
Run: pytest test_lifecycle.py -v
"""
import logging
import pytest
from datetime import datetime
from decimal import Decimal

from app.errors import (
    BusyError, InsufficientStockError, ItemNotFoundError, NotFoundError,
    StoreAdapterError, ValidationError,
)
from app.sales.cart import CompletedSale, InventoryItemRef, SaleDraft
from app.sales.held_bills import HeldBill, InMemoryHeldBillStore
from app.sales.lifecycle import SaleLifecycle
from app.sales.pricing import DiscountPolicy
from app.sales.receipt import ReceiptEmitter
from app.sales.session import SaleSession


# ── Fakes ─────────────────────────────────────────────────────────

class FakeGateway:
    def __init__(self, stock):
        self.stock = dict(stock)
        self.calls = []

    def sell(self, item_id, quantity):
        self.calls.append((item_id, quantity))
        if item_id not in self.stock:
            raise ItemNotFoundError(item_id)
        if self.stock[item_id] < quantity:
            raise InsufficientStockError(f'Item {item_id}', quantity, self.stock[item_id])
        self.stock[item_id] -= quantity


class FakeRepository:
    def __init__(self, fail=False):
        self.fail = fail
        self.sales = []

    def record(self, draft, timestamp):
        if self.fail:
            raise StoreAdapterError('Stock was updated but the sale record could not be saved.')
        sale = CompletedSale.from_draft(draft, f'{timestamp.year}-{len(self.sales) + 1:04d}', timestamp)
        self.sales.append(sale)
        return sale


class FlakyStore(InMemoryHeldBillStore):
    def __init__(self, fail_save=False, fail_delete=False):
        super().__init__()
        self.fail_save = fail_save
        self.fail_delete = fail_delete

    def save(self, bill):
        if self.fail_save:
            raise StoreAdapterError('Failed to hold the bill.')
        super().save(bill)

    def delete_by_id(self, bill_id):
        if self.fail_delete:
            raise StoreAdapterError('Failed to delete the held bill.')
        super().delete_by_id(bill_id)


def item(item_id, mrp='100.00'):
    return InventoryItemRef(id=item_id, code=f'IT{item_id:03d}', name=f'Item {item_id}',
                            unit='PCS', mrp=Decimal(mrp))


def fill(draft, customer='Asha Rao'):
    draft.update_customer(customer_name=customer)
    draft.add_line(item(1, '100.00'), 2, DiscountPolicy.percentage(10))
    draft.add_line(item(2, '90.00'), 1, DiscountPolicy.divisor(3))
    draft.add_line(item(1, '100.00'), 1)
    return draft


def make_lifecycle(stock=None, store=None, repository=None):
    session = SaleSession()
    lifecycle = SaleLifecycle(
        session,
        gateway=FakeGateway(stock if stock is not None else {1: 10, 2: 10}),
        store=store if store is not None else InMemoryHeldBillStore(),
        repository=repository or FakeRepository(),
        emitter=ReceiptEmitter(business_name='Test Pharmacy'),
    )
    return lifecycle


# ── Process ───────────────────────────────────────────────────────

def test_process_empty_cart_touches_nothing():
    lc = make_lifecycle()
    lc.draft.update_customer(customer_name='Asha')
    with pytest.raises(ValidationError) as exc:
        lc.process()
    assert 'at least one item' in exc.value.message
    assert lc.gateway.calls == []
    assert lc.repository.sales == []


@pytest.mark.parametrize('name', ['', '   '])
def test_process_needs_customer_name(name):
    lc = make_lifecycle()
    fill(lc.draft, customer=name)
    with pytest.raises(ValidationError) as exc:
        lc.process()
    assert exc.value.message == 'Please enter customer name.'
    assert lc.gateway.calls == []
    assert len(lc.draft.lines) == 3


def test_process_sells_in_cart_order_and_resets():
    lc = make_lifecycle()
    fill(lc.draft)

    sale, receipt = lc.process(now=datetime(2026, 5, 4, 9, 15))

    assert lc.gateway.calls == [(1, 2), (2, 1), (1, 1)]
    assert lc.gateway.stock == {1: 7, 2: 9}
    assert sale.id == '2026-0001'
    # 180 + 30 + 100
    assert sale.grand_total == Decimal('310.00')
    assert lc.repository.sales == [sale]
    assert sale.id in receipt
    assert 'Test Pharmacy' in receipt
    assert lc.draft == SaleDraft()
    assert not lc.session.is_loading


def test_process_stops_at_first_refused_line():
    lc = make_lifecycle(stock={1: 10, 2: 0})
    fill(lc.draft)

    with pytest.raises(InsufficientStockError) as exc:
        lc.process()

    # line 1 stays deducted, line 3 never attempted
    assert lc.gateway.calls == [(1, 2), (2, 1)]
    assert lc.gateway.stock[1] == 8
    assert exc.value.payload['applied'] == [{'item_id': 1, 'quantity': 2}]
    assert exc.value.payload['failed_line'] == 1
    assert exc.value.status_code == 409
    assert len(lc.draft.lines) == 3
    assert lc.repository.sales == []
    assert not lc.session.busy.is_set('process')


def test_process_unknown_item():
    lc = make_lifecycle(stock={2: 10})
    fill(lc.draft)
    with pytest.raises(ItemNotFoundError) as exc:
        lc.process()
    assert exc.value.payload['applied'] == []
    assert lc.gateway.calls == [(1, 2)]


def test_process_record_failure_keeps_draft():
    lc = make_lifecycle(repository=FakeRepository(fail=True))
    fill(lc.draft)
    with pytest.raises(StoreAdapterError):
        lc.process()
    assert len(lc.draft.lines) == 3
    assert lc.draft.customer_name == 'Asha Rao'


def test_partial_failure_logged(caplog):
    lc = make_lifecycle(stock={1: 10, 2: 0})
    fill(lc.draft)
    with caplog.at_level(logging.WARNING, logger='app.sales.lifecycle'):
        with pytest.raises(InsufficientStockError):
            lc.process()
    assert 'stock already deducted' in caplog.text


def test_process_while_processing_is_refused():
    lc = make_lifecycle()
    fill(lc.draft)
    lc.session.busy.acquire('process')

    with pytest.raises(BusyError) as exc:
        lc.process()
    assert exc.value.payload == {'operation': 'process'}
    assert lc.gateway.calls == []

    # other kinds are independent
    lc.hold(timestamp=1000)
    assert lc.session.is_loading


# ── Hold ──────────────────────────────────────────────────────────

def test_hold_empty_cart():
    lc = make_lifecycle()
    with pytest.raises(ValidationError) as exc:
        lc.hold()
    assert exc.value.message == 'There are no items to hold.'
    assert lc.store.list_all() == []


def test_hold_stores_and_resets():
    lc = make_lifecycle()
    fill(lc.draft, customer='')

    bill = lc.hold(timestamp=1700000000000)

    assert bill.id.startswith('heldBill_1700000000000_')
    assert bill.customer_name == 'Customer'
    assert [b.id for b in lc.store.list_all()] == [bill.id]
    assert lc.held_bills() == [bill]
    assert lc.draft.is_empty


def test_hold_failure_keeps_draft_and_cache():
    lc = make_lifecycle(store=FlakyStore(fail_save=True))
    fill(lc.draft)
    before = lc.draft.snapshot()

    with pytest.raises(StoreAdapterError):
        lc.hold()

    assert lc.draft == before
    assert lc.session.held_bills == []


# ── Resume ────────────────────────────────────────────────────────

def test_hold_then_resume_restores_lines():
    lc = make_lifecycle()
    fill(lc.draft)
    original = lc.draft.snapshot()

    bill = lc.hold(timestamp=5000)
    outcome = lc.resume(bill.id)

    assert outcome.removed
    assert lc.draft.lines == original.lines
    assert lc.draft.customer_name == 'Asha Rao'
    assert lc.store.list_all() == []
    assert lc.held_bills() == []


def test_resume_replaces_current_draft():
    lc = make_lifecycle()
    fill(lc.draft)
    bill = lc.hold(timestamp=5000)

    lc.draft.update_customer(customer_name='Walk-in')
    lc.draft.add_line(item(7), 4)
    lc.resume(bill.id)

    assert lc.draft.customer_name == 'Asha Rao'
    assert [line.item.id for line in lc.draft.lines] == [1, 2, 1]


def test_resume_without_id_takes_most_recent():
    lc = make_lifecycle()
    fill(lc.draft, customer='First')
    lc.hold(timestamp=1000)
    fill(lc.draft, customer='Second')
    lc.hold(timestamp=2000)

    outcome = lc.resume()
    assert outcome.bill.customer_name == 'Second'
    assert [b.customer_name for b in lc.held_bills()] == ['First']


def test_resume_bill_held_elsewhere():
    store = InMemoryHeldBillStore()
    other = fill(SaleDraft(), customer='Other Terminal')
    bill = HeldBill.from_draft(other, 4242)
    store.save(bill)

    lc = make_lifecycle(store=store)
    lc.resume(bill.id)
    assert lc.draft.customer_name == 'Other Terminal'
    assert store.list_all() == []


def test_resume_unknown_bill():
    lc = make_lifecycle()
    with pytest.raises(NotFoundError):
        lc.resume('heldBill_0_missing')
    with pytest.raises(NotFoundError):
        lc.resume()


def test_resume_with_failed_delete_leaves_orphan():
    store = FlakyStore()
    lc = make_lifecycle(store=store)
    fill(lc.draft)
    bill = lc.hold(timestamp=5000)

    store.fail_delete = True
    outcome = lc.resume(bill.id)

    assert not outcome.removed
    assert len(lc.draft.lines) == 3
    assert [b.id for b in store.list_all()] == [bill.id]
    assert lc.held_bills() == [bill]

    # resuming the orphan again gives the same snapshot
    lc.draft.reset()
    lc.resume(bill.id)
    assert lc.draft.lines == bill.snapshot.lines


def test_resumed_draft_does_not_alias_bill():
    lc = make_lifecycle(store=FlakyStore(fail_delete=True))
    fill(lc.draft)
    bill = lc.hold(timestamp=5000)
    lc.resume(bill.id)

    lc.draft.update_quantity(0, 9)
    assert bill.snapshot.lines[0].quantity == 2


# ── Delete ────────────────────────────────────────────────────────

def test_delete_removes_bill():
    lc = make_lifecycle()
    fill(lc.draft)
    bill = lc.hold(timestamp=1000)

    lc.delete(bill.id)
    assert lc.held_bills() == []
    assert lc.store.list_all() == []

    lc.delete(bill.id)   # already gone


def test_delete_failure_keeps_bill_listed():
    store = FlakyStore()
    lc = make_lifecycle(store=store)
    fill(lc.draft)
    bill = lc.hold(timestamp=1000)

    store.fail_delete = True
    with pytest.raises(StoreAdapterError):
        lc.delete(bill.id)
    assert lc.held_bills() == [bill]
    assert not lc.session.busy.is_set('delete')


# ── Held-bill list and prompt ─────────────────────────────────────

def test_held_bills_most_recent_first():
    lc = make_lifecycle()
    for ts in (1000, 3000, 2000):
        fill(lc.draft, customer=f'C{ts}')
        lc.hold(timestamp=ts)

    assert [b.timestamp for b in lc.held_bills()] == [3000, 2000, 1000]
    assert [b.timestamp for b in lc.store.list_all()] == [1000, 3000, 2000]
    assert [b.timestamp for b in lc.refresh_held_bills()] == [3000, 2000, 1000]


def test_dismissed_prompt_stays_hidden_until_newer_bill():
    lc = make_lifecycle()
    fill(lc.draft)
    first = lc.hold(timestamp=1000)
    assert lc.latest_held_bill() == first

    lc.dismiss_prompt()
    assert lc.latest_held_bill() is None
    assert lc.held_bills() == [first]

    fill(lc.draft, customer='Later')
    second = lc.hold(timestamp=2000)
    assert lc.latest_held_bill() == second


def test_no_prompt_without_bills():
    lc = make_lifecycle()
    assert lc.latest_held_bill() is None
    lc.dismiss_prompt()
    assert lc.session.dismissed_prompt_id is None


def test_session_cookie_form():
    session = SaleSession()
    fill(session.draft)
    session.dismissed_prompt_id = 'heldBill_1_abc'
    restored = SaleSession.from_dict(session.to_dict())
    assert restored.draft == session.draft
    assert restored.dismissed_prompt_id == 'heldBill_1_abc'
    assert restored.held_bills == []
