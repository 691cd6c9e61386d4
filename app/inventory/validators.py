"""
app/inventory/validators.py
----------------------------
Pure-Python validation for stock adjustment payloads.
Returns a dict of field -> error_message.
An empty dict means all fields are valid.
"""


def validate_stock_adjustment(form_data: dict) -> dict:
    """
    Validate the body of add-stock / sell calls: {"quantity": <int ≥ 1>}.
    """
    errors = {}

    qty_raw = str(form_data.get('quantity', '')).strip()
    if not qty_raw:
        errors['quantity'] = 'Quantity is required.'
    else:
        try:
            qty = int(qty_raw)
            if qty < 1:
                errors['quantity'] = 'Quantity must be at least 1.'
        except ValueError:
            errors['quantity'] = 'Quantity must be a whole number.'

    reason = form_data.get('reason')
    if reason is not None and len(str(reason)) > 255:
        errors['reason'] = 'Reason must be 255 characters or fewer.'

    return errors


def parse_stock_adjustment(form_data: dict) -> dict:
    """
    Convert validated raw values to Python types.
    Call only after validate_stock_adjustment returns no errors.
    """
    parsed = {'quantity': int(str(form_data['quantity']).strip())}
    reason = (form_data.get('reason') or '').strip()
    if reason:
        parsed['reason'] = reason
    return parsed
