"""Custom exceptions for the order transaction engine."""

class KasirError(Exception):
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

class NotFoundError(KasirError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class InvalidInputError(KasirError):
    """Malformed references or an invalid option/product pairing."""
    def __init__(self, message="Invalid input", payload=None):
        super().__init__(message, 400, payload)

class InsufficientStockError(KasirError):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, product_name, required, available):
        self.product_name = product_name
        self.required = required
        self.available = available
        message = f"Insufficient stock for {product_name}: requested {required}, available {available}"
        super().__init__(message, 409, {'product': product_name, 'requested': required, 'available': available})

class OrderNotModifiableError(KasirError):
    """Order status does not allow the requested mutation."""
    def __init__(self, message="Order cannot be modified in its current status"):
        super().__init__(message, 409)

class OrderNotCancellableError(KasirError):
    """Order status does not allow cancellation."""
    def __init__(self, message="Order cannot be cancelled in its current status"):
        super().__init__(message, 409)

class InvalidStatusTransitionError(KasirError):
    """Illegal from -> to status transition."""
    def __init__(self, current, target):
        self.current = current
        self.target = target
        message = f"Invalid status transition from '{current}' to '{target}'"
        super().__init__(message, 409, {'from': current, 'to': target})

class PromotionNotApplicableError(KasirError):
    """Promotion exists but cannot be applied to the order."""
    def __init__(self, reason):
        self.reason = reason
        super().__init__(f"Promotion not applicable: {reason}", 422, {'reason': reason})

class PaymentFailedError(KasirError):
    """Payment gateway call failed."""
    def __init__(self, message="Payment gateway request failed", status_code=502):
        super().__init__(message, status_code)

class InvalidSignatureError(PaymentFailedError):
    """Gateway notification signature could not be verified."""
    def __init__(self, message="Invalid notification signature"):
        super().__init__(message, 401)

class InternalError(KasirError):
    """Store or transport failure."""
    def __init__(self, message="An internal error occurred"):
        super().__init__(message, 500)
