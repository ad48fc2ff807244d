"""Domain errors raised by the services and rendered as `{"error": message}`."""


class ShopError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgument(ShopError):
    status_code = 400


class InvalidState(ShopError):
    status_code = 400


class InsufficientStock(ShopError):
    status_code = 400

    def __init__(self, product_name: str, message: str = None):
        super().__init__(message or f"Not enough stock for {product_name}")
        self.product_name = product_name


class NotAuthenticated(ShopError):
    status_code = 401


class Unauthorized(ShopError):
    status_code = 403


class NotFound(ShopError):
    status_code = 404
