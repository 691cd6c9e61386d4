import uuid

from flask import current_app, jsonify, request, session, Response

from app.errors import ValidationError
from app.sales import sales
from app.sales.lifecycle import SaleLifecycle
from app.sales.pricing import DiscountKind
from app.sales.receipt import import_sale_json
from app.sales.session import SaleSession
from app.sales.validators import (
    validate_line_payload, parse_line_payload, validate_header_payload, raise_for,
)

SESSION_KEY  = 'sale_session'
TERMINAL_KEY = 'terminal_id'


# ── Helpers ───────────────────────────────────────────────────────

def _services():
    return current_app.extensions['sales']


def _load_sale_session() -> SaleSession:
    """The terminal's SaleSession, rebuilt from the session cookie."""
    terminal_id = session.get(TERMINAL_KEY)
    if not terminal_id:
        terminal_id = session[TERMINAL_KEY] = uuid.uuid4().hex
    busy = _services().busy_board.flags_for(terminal_id)
    try:
        return SaleSession.from_dict(session.get(SESSION_KEY), busy=busy)
    except ValidationError:
        current_app.logger.warning(f"Discarding unreadable draft for terminal {terminal_id}")
        return SaleSession(busy=busy)


def _save_sale_session(sale_session: SaleSession) -> None:
    session[SESSION_KEY] = sale_session.to_dict()
    session.modified = True


def _lifecycle(sale_session: SaleSession) -> SaleLifecycle:
    services = _services()
    return SaleLifecycle(
        sale_session,
        gateway=services.gateway,
        store=services.store,
        repository=services.repository,
        emitter=services.emitter,
    )


def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def _draft_json(draft) -> dict:
    data = draft.to_dict()
    for raw, line in zip(data['lines'], draft.lines):
        raw['discount_amount'] = str(line.discount_amount)
    totals = draft.totals
    data['totals'] = {key: (str(value) if key != 'item_count' else value)
                      for key, value in totals.items()}
    return data


def _draft_response(sale_session: SaleSession, status: int = 200, **extra):
    body = {'status': 'ok', 'draft': _draft_json(sale_session.draft),
            'is_loading': sale_session.is_loading}
    body.update(extra)
    return jsonify(body), status


# ── DRAFT ─────────────────────────────────────────────────────────

@sales.route('/draft')
def draft():
    return _draft_response(_load_sale_session())


@sales.route('/draft/customer', methods=['POST'])
def update_header():
    """Customer details, payment method and notes."""
    data = _payload()
    raise_for(validate_header_payload(data))

    sale_session = _load_sale_session()
    draft = sale_session.draft
    fields = {name: data[name] for name in ('customer_name', 'customer_phone', 'customer_address')
              if name in data}
    if fields:
        draft.update_customer(**fields)
    if 'payment_method' in data:
        draft.set_payment_method(data['payment_method'])
    if 'notes' in data:
        draft.set_notes(data['notes'])

    _save_sale_session(sale_session)
    return _draft_response(sale_session)


@sales.route('/draft/lines', methods=['POST'])
def add_line():
    """
    Add a catalog item to the draft at its current MRP.
    Stock is only enforced when the sale is processed; here an
    over-quantity just comes back as a warning.
    """
    data = _payload()
    raise_for(validate_line_payload(data))
    parsed = parse_line_payload(data)

    item = _services().catalog.get(parsed['item_id'])
    if not item.is_active:
        raise ValidationError(f'"{item.item_name}" is not available for sale.')

    sale_session = _load_sale_session()
    draft = sale_session.draft
    draft.add_line(item.to_ref(), parsed['quantity'], parsed['discount'])

    in_cart = sum(line.quantity for line in draft.lines if line.item.id == item.id)
    warning = None
    if in_cart > item.available_stock:
        warning = (f'Only {item.available_stock} {item.base_unit} of "{item.item_name}" '
                   f'in stock; {in_cart} in this sale.')

    _save_sale_session(sale_session)
    current_app.logger.info(f"Added {parsed['quantity']} x {item.item_code} to draft")
    return _draft_response(sale_session, 201, warning=warning)


@sales.route('/draft/lines/<int:index>', methods=['PATCH'])
def update_line(index):
    data = _payload()
    sale_session = _load_sale_session()

    # A bare discount_value re-values the line's current discount type
    if 'discount_value' in data and 'discount_type' not in data:
        kind = sale_session.draft.line(index).discount.kind
        if kind is DiscountKind.none:
            raise_for({'discount': 'Choose a discount type for this value.'})
        data = dict(data, discount_type=kind.value)

    raise_for(validate_line_payload(data, require_item=False))
    parsed = parse_line_payload(data)

    if 'quantity' in parsed:
        sale_session.draft.update_quantity(index, parsed['quantity'])
    if 'discount' in parsed:
        sale_session.draft.update_discount(index, parsed['discount'])

    _save_sale_session(sale_session)
    return _draft_response(sale_session)


@sales.route('/draft/lines/<int:index>', methods=['DELETE'])
def remove_line(index):
    sale_session = _load_sale_session()
    sale_session.draft.remove_line(index)
    _save_sale_session(sale_session)
    return _draft_response(sale_session)


@sales.route('/draft/clear', methods=['POST'])
def clear_lines():
    """Remove all items; customer details stay."""
    sale_session = _load_sale_session()
    sale_session.draft.clear()
    _save_sale_session(sale_session)
    return _draft_response(sale_session)


@sales.route('/draft/reset', methods=['POST'])
def reset():
    sale_session = _load_sale_session()
    sale_session.draft.reset()
    _save_sale_session(sale_session)
    return _draft_response(sale_session)


# ── PROCESS / HOLD ────────────────────────────────────────────────

@sales.route('/process', methods=['POST'])
def process():
    """Deduct stock for every line, record the sale, return its receipt."""
    sale_session = _load_sale_session()
    sale, receipt = _lifecycle(sale_session).process()
    _save_sale_session(sale_session)
    return _draft_response(sale_session, 201, sale=sale.to_dict(), receipt=receipt)


@sales.route('/hold', methods=['POST'])
def hold():
    sale_session = _load_sale_session()
    lifecycle = _lifecycle(sale_session)
    bill = lifecycle.hold()
    _save_sale_session(sale_session)
    return _draft_response(sale_session, 201, held_bill=bill.to_dict())


# ── HELD BILLS ────────────────────────────────────────────────────

@sales.route('/held')
def held_bills():
    """Held bills, most recent first."""
    sale_session = _load_sale_session()
    lifecycle = _lifecycle(sale_session)
    bills = lifecycle.refresh_held_bills()
    latest = lifecycle.latest_held_bill()
    return jsonify({
        'status': 'ok',
        'bills':  [bill.to_dict() for bill in bills],
        'prompt': latest.to_dict() if latest else None,
    })


@sales.route('/held/latest')
def latest_held_bill():
    """The "resume your last bill or start fresh?" prompt."""
    sale_session = _load_sale_session()
    lifecycle = _lifecycle(sale_session)
    lifecycle.refresh_held_bills()
    latest = lifecycle.latest_held_bill()
    return jsonify({'status': 'ok', 'bill': latest.to_dict() if latest else None})


@sales.route('/held/latest/dismiss', methods=['POST'])
def dismiss_prompt():
    sale_session = _load_sale_session()
    lifecycle = _lifecycle(sale_session)
    lifecycle.refresh_held_bills()
    lifecycle.dismiss_prompt()
    _save_sale_session(sale_session)
    return jsonify({'status': 'ok', 'bill': None})


@sales.route('/held/resume', methods=['POST'])
@sales.route('/held/<bill_id>/resume', methods=['POST'])
def resume(bill_id=None):
    """Load a held bill into the draft, replacing whatever is there."""
    sale_session = _load_sale_session()
    lifecycle = _lifecycle(sale_session)
    lifecycle.refresh_held_bills()
    outcome = lifecycle.resume(bill_id)
    _save_sale_session(sale_session)

    warning = None
    if not outcome.removed:
        warning = 'Bill restored, but it could not be removed from the held list.'
    return _draft_response(sale_session, resumed=outcome.bill.id, warning=warning,
                           bills=[b.to_dict() for b in lifecycle.held_bills()])


@sales.route('/held/<bill_id>', methods=['DELETE'])
def delete_held_bill(bill_id):
    sale_session = _load_sale_session()
    lifecycle = _lifecycle(sale_session)
    lifecycle.refresh_held_bills()
    lifecycle.delete(bill_id)
    return jsonify({'status': 'ok', 'bills': [b.to_dict() for b in lifecycle.held_bills()]})


# ── COMPLETED SALES ───────────────────────────────────────────────

@sales.route('/recent')
def recent():
    limit = min(request.args.get('limit', 20, type=int), 100)
    sales_list = _services().repository.recent(limit)
    return jsonify({'status': 'ok', 'sales': [s.to_dict() for s in sales_list]})


@sales.route('/import', methods=['POST'])
def import_sale():
    """Re-load a sale exported from /sales/<id>/export."""
    raw = request.get_data(as_text=True)
    sale = import_sale_json(raw)
    repository = _services().repository
    created = not repository.exists(sale.id)
    if created:
        repository.add(sale)
        current_app.logger.info(f"Imported sale {sale.id}")
    return jsonify({'status': 'ok', 'created': created, 'sale': sale.to_dict()}), 201 if created else 200


@sales.route('/<sale_id>')
def sale_detail(sale_id):
    sale = _services().repository.get(sale_id)
    return jsonify({'status': 'ok', 'sale': sale.to_dict()})


@sales.route('/<sale_id>/receipt')
def receipt(sale_id):
    """Text slip by default; ?format=html for the printable page."""
    services = _services()
    sale = services.repository.get(sale_id)
    if request.args.get('format') == 'html':
        return services.emitter.render_html(sale)
    return Response(services.emitter.render(sale), mimetype='text/plain')


@sales.route('/<sale_id>/export')
def export(sale_id):
    services = _services()
    sale = services.repository.get(sale_id)
    return Response(
        services.emitter.export_json(sale),
        mimetype='application/json',
        headers={'Content-Disposition': f'attachment; filename=sale-{sale.id}.json'},
    )
