"""Checkout error taxonomy.

Each error carries the HTTP status the API layer answers with, so routes can
map them without a lookup table.
"""


class CheckoutError(Exception):
    status = 400

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class ValidationError(CheckoutError):
    status = 422


class SessionExpiredError(CheckoutError):
    status = 404

    def __init__(self, message="Cart session is invalid or expired"):
        super().__init__(message)


class EmptyCartError(CheckoutError):
    status = 422

    def __init__(self, message="Cart is empty"):
        super().__init__(message)


class UnavailableItemsError(CheckoutError):
    status = 422

    def __init__(self, unavailable):
        self.unavailable = list(unavailable)
        super().__init__(
            "Some products are no longer available: " + ", ".join(self.unavailable),
            errors=self.unavailable,
        )


class NotFoundError(CheckoutError):
    status = 404


class ForbiddenError(CheckoutError):
    status = 403


class TransactionFailure(CheckoutError):
    status = 500


class StockConflictError(TransactionFailure):
    """A concurrent checkout consumed the stock between lock and decrement."""

    def __init__(self, variant_id):
        self.variant_id = variant_id
        super().__init__(f"Stock changed concurrently for variant {variant_id}")


__all__ = [
    "CheckoutError",
    "ValidationError",
    "SessionExpiredError",
    "EmptyCartError",
    "UnavailableItemsError",
    "NotFoundError",
    "ForbiddenError",
    "TransactionFailure",
    "StockConflictError",
]
