class CartServiceException(Exception):
    status_code = 400


class NotFound(CartServiceException):
    status_code = 404


class CartValidationError(CartServiceException):
    status_code = 400


class CouponValidationError(CartValidationError):
    pass


class InsufficientStock(CartServiceException):
    status_code = 409


class Unauthorized(CartServiceException):
    status_code = 401


class EmptyCart(CartServiceException):
    status_code = 400
