"""Domain errors raised by the inventory services.

Every error carries a machine readable ``kind`` and the HTTP status the admin
API answers with. The exception handlers turn them into the standard error
envelope.
"""


class InventoryError(Exception):
    kind = "inventory_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidStockRequestError(InventoryError):
    """Missing reason, non-positive quantity, empty bulk payload..."""
    kind = "invalid_request"
    status_code = 400


class InvalidTemplateIdError(InventoryError):
    kind = "invalid_template_id"
    status_code = 400


class InvalidDateError(InventoryError):
    kind = "invalid_date"
    status_code = 400


class InventoryNotFoundError(InventoryError):
    kind = "no_inventory_record"
    status_code = 404


class StoreNotFoundError(InventoryError):
    kind = "store_not_found"
    status_code = 404


class OrderNotFoundError(InventoryError):
    kind = "order_not_found"
    status_code = 404


class DuplicateInventoryError(InventoryError):
    kind = "duplicate_inventory"
    status_code = 409


class InvalidOrderStateError(InventoryError):
    kind = "invalid_order_state"
    status_code = 400


class AvailableStockExceedsTotalError(InventoryError):
    kind = "available_exceeds_total"
    status_code = 400


class InsufficientStockError(InventoryError):
    kind = "insufficient_stock"
    status_code = 400

    def __init__(self, item_name: str, stock_type: str, required: int, available: int):
        self.item_name = item_name
        self.stock_type = stock_type
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient stock for '{item_name}' ({stock_type}): "
            f"requested={required}, available={available}"
        )
