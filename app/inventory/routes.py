from flask import current_app, jsonify, request

from app.inventory import inventory
from app.inventory.validators import validate_stock_adjustment, parse_stock_adjustment
from app.sales.validators import raise_for


def _services():
    return current_app.extensions['sales']


# ── CATALOG LOOKUP ────────────────────────────────────────────────────────────

@inventory.route('/search')
def search():
    """Active items matching ?q= on name, code or barcode."""
    q = request.args.get('q', '').strip()
    limit = request.args.get('limit', type=int)
    items = _services().catalog.search_items(q, limit)
    return jsonify([item.to_dict() for item in items])


@inventory.route('/<int:item_id>')
def detail(item_id):
    item = _services().catalog.get(item_id)
    return jsonify(item.to_dict())


# ── STOCK ADJUSTMENT ──────────────────────────────────────────────────────────

@inventory.route('/<int:item_id>/add-stock', methods=['POST'])
def add_stock(item_id):
    data = request.get_json(silent=True) or request.form.to_dict()
    raise_for(validate_stock_adjustment(data))
    parsed = parse_stock_adjustment(data)

    item = _services().gateway.add_stock(item_id, parsed['quantity'],
                                         parsed.get('reason', 'Stock Added'))
    current_app.logger.info(f"Stock added: {parsed['quantity']} x {item.item_code}")
    return jsonify(item.to_dict())


@inventory.route('/<int:item_id>/sell', methods=['POST'])
def sell(item_id):
    """Sell stock of one item outside a sale (manual adjustment)."""
    data = request.get_json(silent=True) or request.form.to_dict()
    raise_for(validate_stock_adjustment(data))
    parsed = parse_stock_adjustment(data)

    item = _services().gateway.sell(item_id, parsed['quantity'],
                                    parsed.get('reason', 'Manual Sale'))
    return jsonify(item.to_dict())
