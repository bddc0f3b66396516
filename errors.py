"""
Error taxonomy for the storefront.

ValidationError and OutOfStock are meant to reach the shopper as actionable
messages. RemoteUnavailable and CorruptLocalState are recovered from where
they are raised and never escape to the caller.
"""


class StorefrontError(Exception):
    message = "Storefront error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class ValidationError(StorefrontError):
    message = "Invalid request"


class InvalidQuery(ValidationError):
    message = "Invalid catalog query"


class NotFound(StorefrontError):
    message = "Not found"


class OutOfStock(StorefrontError):
    message = "Out of Stock"


class RemoteUnavailable(StorefrontError):
    message = "Remote store unavailable"


class CorruptLocalState(StorefrontError):
    message = "Local state could not be read"
