"""Custom exceptions for the POS back-office application."""


class PosError(Exception):
    """Base exception for all application errors."""
    kind = 'error'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['code'] = self.status_code
        rv['status'] = 'error'
        rv['kind'] = self.kind
        rv['message'] = self.message
        return rv


class ValidationError(PosError):
    """Malformed or out-of-range input, raised before any write."""
    kind = 'validation_error'

    def __init__(self, message, field=None, errors=None):
        if errors is None and field:
            errors = {field: message}
        self.field = field
        self.errors = errors or {}
        super().__init__(message, 400, {'errors': self.errors} if self.errors else None)


class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    kind = 'not_found'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class ConflictError(PosError):
    """Uniqueness or already-linked violation."""
    kind = 'conflict'

    def __init__(self, message="Resource already exists", payload=None):
        super().__init__(message, 409, payload)


class CouponInvalidError(PosError):
    """Coupon exists but cannot be redeemed right now."""
    kind = 'coupon_invalid'
    reason = 'invalid'
    default_message = 'Coupon is not valid'

    def __init__(self, message=None, coupon=None):
        self.coupon = coupon
        super().__init__(message or self.default_message, 422, {'reason': self.reason})


class CouponNotActiveError(CouponInvalidError):
    reason = 'not_active'
    default_message = 'Coupon is not active'


class CouponNotYetValidError(CouponInvalidError):
    reason = 'not_yet_valid'
    default_message = 'Coupon is not yet valid'


class CouponExpiredError(CouponInvalidError):
    reason = 'expired'
    default_message = 'Coupon has expired'


class CouponExhaustedError(CouponInvalidError):
    reason = 'exhausted_uses'
    default_message = 'Coupon has reached maximum usage limit'


class StoreError(PosError):
    """Opaque infrastructure failure. Details are logged, never returned."""
    kind = 'store_error'

    def __init__(self, message="Internal Server Error"):
        super().__init__(message, 500)
