"""
Domain Errors

Raised by the catalog and group services; the web layer turns each one
into an HTTP status and a message for the alert dialog.
"""


class GroupOrderError(Exception):
    """Base class for refusals the user can act on."""


class StoreNotFoundError(GroupOrderError):
    pass


class ProductNotFoundError(GroupOrderError):
    pass


class DuplicateProductError(GroupOrderError):
    pass


class ImageUploadError(GroupOrderError):
    pass


class GroupNotFoundError(GroupOrderError):
    pass


class InvalidDeadlineError(GroupOrderError):
    pass


class OrderNotFoundError(GroupOrderError):
    pass


class GroupExpiredError(GroupOrderError):
    """The group's deadline has passed; its orders are frozen."""


class ConfirmationMismatchError(GroupOrderError):
    """The re-typed purchaser name does not match the order."""
