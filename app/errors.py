"""
app/errors.py
-------------
Application exceptions. Every error a cashier can cause or recover from
derives from PosError and is turned into a JSON notification by the
handler registered in create_app().
"""


class PosError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class ValidationError(PosError):
    """Bad input: empty cart, missing customer name, invalid discount, …"""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class NotFoundError(PosError):
    """Raised when a held bill, sale or catalog item does not exist."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class BusyError(PosError):
    """An operation of the same kind is still in flight for this session."""
    def __init__(self, operation):
        super().__init__(f'A {operation} is already in progress. Please wait.', 409,
                         {'operation': operation})


class GatewayError(PosError):
    """A stock mutation was refused by the inventory store."""
    def __init__(self, message, status_code=409, payload=None):
        super().__init__(message, status_code, payload)


class ItemNotFoundError(GatewayError):
    def __init__(self, item_id):
        super().__init__(f'Inventory item {item_id} not found.', 404, {'item_id': item_id})


class InsufficientStockError(GatewayError):
    """Raised when an item has less stock than the quantity being sold."""
    def __init__(self, item_name, required, available):
        message = (f'Insufficient stock for "{item_name}". '
                   f'Available: {available}, requested: {required}.')
        super().__init__(message, 409, {'required': required, 'available': available})


class StoreAdapterError(PosError):
    """Persistence of a held bill or sale record failed."""
    def __init__(self, message, payload=None):
        super().__init__(message, 503, payload)
