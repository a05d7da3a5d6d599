"""Custom exceptions for the Tradeflow application."""


class TradeflowError(Exception):
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


class BusinessLogicError(TradeflowError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class ValidationError(BusinessLogicError):
    """Malformed amounts, missing line items and similar bad input. Raised before any write."""
    def __init__(self, message, payload=None):
        super().__init__(message, 422, payload)


class InvalidTransitionError(ValidationError):
    """Raised when a status change is not allowed by the entity's transition table."""
    def __init__(self, entity, current, target, message=None):
        current_value = getattr(current, 'value', current)
        target_value = getattr(target, 'value', target)
        message = message or f"Cannot move {entity} from '{current_value}' to '{target_value}'"
        super().__init__(message, payload={'entity': entity, 'from': current_value, 'to': target_value})
        self.entity = entity
        self.current = current
        self.target = target


class NotFoundError(TradeflowError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class ConflictError(BusinessLogicError):
    """
    The operation was already done for this parent (duplicate order, payment,
    shipment or ledger projection). Callers must not retry with the same input.
    """
    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)


class SequenceContentionError(TradeflowError):
    """A counter or row lock could not be obtained within the retry budget."""
    retryable = True

    def __init__(self, message="Could not obtain a document number, please retry", payload=None):
        super().__init__(message, 503, payload)

    def to_dict(self):
        rv = super().to_dict()
        rv['retryable'] = True
        return rv


class UnauthorizedError(TradeflowError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)
