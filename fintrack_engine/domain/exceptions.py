"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class AggregatorTimeout(DomainException):
    """Item refresh did not settle within the polling ceiling.

    Soft failure: the item may still be usable, so callers usually log and
    carry on with ``item`` (the last status observed).
    """

    def __init__(self, message: str, item=None):
        super().__init__(message)
        self.item = item


class AggregatorRequestFailed(DomainException):
    """Aggregator API returned an error or is unavailable"""

    pass


class ValidationError(DomainException):
    """Caller-supplied arguments are insufficient for the operation"""

    pass


class UnsupportedMethod(DomainException):
    """Credit payment attempted through the non-credit payment path"""

    pass


class NotFoundError(DomainException):
    """Referenced entity does not exist for this user"""

    pass


class PersistenceWriteFailed(DomainException):
    """Write to the persistence layer failed; the unit of work was rolled back"""

    pass


class ConcurrentModification(PersistenceWriteFailed):
    """Entity changed underneath us (optimistic version check failed)"""

    pass


class DuplicateAvoided(DomainException):
    """Not an error: the operation was already applied and was skipped"""

    pass
