"""
app/sales/validators.py
-----------------------
Validation for sales terminal payloads (JSON bodies or form data).
validate_* return a dict of field -> error_message; empty means valid.
parse_* convert already-validated raw values to Python types.
"""
from app.errors import ValidationError
from app.sales.cart import CUSTOMER_FIELDS, PaymentMethod
from app.sales.pricing import make_discount

MAX_QUANTITY = 100000


def _quantity_error(raw):
    raw = str(raw if raw is not None else '').strip()
    if not raw:
        return 'Quantity is required.'
    try:
        qty = int(raw)
    except ValueError:
        return 'Quantity must be a whole number.'
    if qty < 1:
        return 'Quantity must be at least 1.'
    if qty > MAX_QUANTITY:
        return f'Quantity must be {MAX_QUANTITY} or fewer.'
    return None


def _discount_error(data):
    try:
        make_discount(data.get('discount_type'), data.get('discount_value'))
    except ValidationError as exc:
        return exc.message
    return None


def validate_line_payload(data: dict, require_item: bool = True) -> dict:
    """
    Validate an add-line (require_item=True) or edit-line payload.

    Fields: item_id, quantity, discount_type, discount_value.
    On edit every field is optional.
    """
    errors = {}

    # ── item_id ──────────────────────────────────────────────────
    if require_item:
        raw_id = str(data.get('item_id', '')).strip()
        if not raw_id:
            errors['item_id'] = 'Select an item to add.'
        elif not raw_id.isdigit():
            errors['item_id'] = 'Item id must be a number.'

    # ── quantity ─────────────────────────────────────────────────
    if require_item or 'quantity' in data:
        error = _quantity_error(data.get('quantity', 1 if require_item else None))
        if error:
            errors['quantity'] = error

    # ── discount ─────────────────────────────────────────────────
    if require_item or 'discount_type' in data:
        error = _discount_error(data)
        if error:
            errors['discount'] = error

    return errors


def parse_line_payload(data: dict) -> dict:
    """Call only after validate_line_payload returns no errors."""
    parsed = {}
    if 'item_id' in data:
        parsed['item_id'] = int(str(data['item_id']).strip())
    if 'quantity' in data or 'item_id' in data:
        parsed['quantity'] = int(str(data.get('quantity', 1)).strip())
    if 'discount_type' in data or 'item_id' in data:
        parsed['discount'] = make_discount(data.get('discount_type'), data.get('discount_value'))
    return parsed


def validate_header_payload(data: dict) -> dict:
    """Customer details, payment method and notes of the draft."""
    errors = {}

    for name in CUSTOMER_FIELDS:
        value = data.get(name)
        if value is not None and not isinstance(value, str):
            errors[name] = 'Must be text.'
    if len((data.get('customer_name') or '')) > 200:
        errors['customer_name'] = 'Customer name must be 200 characters or fewer.'
    if len((data.get('customer_phone') or '')) > 40:
        errors['customer_phone'] = 'Phone must be 40 characters or fewer.'

    if 'payment_method' in data:
        try:
            PaymentMethod.parse(data['payment_method'])
        except ValidationError as exc:
            errors['payment_method'] = exc.message

    return errors


def raise_for(errors: dict) -> None:
    """Turn a non-empty error dict into a ValidationError."""
    if errors:
        first = next(iter(errors.values()))
        raise ValidationError(first, {'errors': errors})
