"""
Error taxonomy shared by the services and the HTTP layer.

Every error carries the HTTP status the views answer with.
Only TransientError is eligible for a retry.
"""


class PortalError(Exception):
    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__ or self.__class__.__name__)
        self.message = str(self.args[0])


class ValidationError(PortalError):
    """Invalid input."""
    status_code = 400


class ConflictError(PortalError):
    """The request conflicts with the current state."""
    status_code = 409


class OrderRejected(ConflictError):
    """The order cannot be placed."""


class NotFoundError(PortalError):
    """Not found."""
    status_code = 404


class TransientError(PortalError):
    """The backing service is temporarily unavailable."""
    status_code = 503


class TransactionCancelled(PortalError):
    """
    A DynamoDB transaction was cancelled.
    `reasons` holds one code per transaction item ("None" for items that passed).
    """
    status_code = 409

    def __init__(self, reasons, message=None):
        super().__init__(message or f"Transaction cancelled: {reasons}")
        self.reasons = list(reasons)

    def failed(self, index):
        """Did the item at `index` fail its condition check?"""
        return index < len(self.reasons) and self.reasons[index] == "ConditionalCheckFailed"
