"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Bill or request data is malformed (bad frequency, date or amount)"""

    pass


class ConflictError(DomainException):
    """Optimistic write lost a race against another writer"""

    pass


class StoreError(DomainException):
    """A store write failed for a single bill"""

    pass


class StoreUnavailable(StoreError):
    """Store is unreachable; the whole tick must be abandoned"""

    pass


class NotificationFailure(DomainException):
    """Notification could not be delivered after all retries"""

    pass


class BillNotFoundError(DomainException):
    """Bill does not exist"""

    pass


class TransactionNotFoundError(DomainException):
    """Transaction does not exist"""

    pass
