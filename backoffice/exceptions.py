"""
Error taxonomy shared by the stock and sales services.

Every service-level failure is one of these; routers let them propagate and
the handlers in exception_handlers.py turn them into JSON responses.
"""
from decimal import Decimal
from typing import Optional

from backoffice.utils.periods import format_quantity


class BackofficeError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BackofficeError):
    """Malformed or missing input (empty cart, bad date range)."""
    status_code = 400


class NotFoundError(BackofficeError):
    """Referenced entity does not exist or is inactive."""
    status_code = 404

    def __init__(self, resource: str, resource_id=None):
        if resource_id is None:
            message = f"{resource} not found"
        else:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class InsufficientStockError(BackofficeError):
    status_code = 400

    def __init__(self, item_name: str, available: Decimal, requested: Optional[Decimal] = None):
        super().__init__(f"Insufficient stock for {item_name}. Available: {format_quantity(available)}")
        self.item_name = item_name
        self.available = available
        self.requested = requested


class ConflictError(BackofficeError):
    """Duplicate unique key. The caller may retry the whole operation."""
    status_code = 409


class PersistenceError(BackofficeError):
    """Storage failure. The transaction has been rolled back."""
    status_code = 500

    public_message = "Database operation failed"

    def __init__(self, message: str = public_message):
        super().__init__(message)
