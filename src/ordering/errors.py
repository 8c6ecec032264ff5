"""Error taxonomy for the Ordering domain.

Every error derives from a Protean exception, so handlers that map
``ValidationError`` and ``ObjectNotFoundError`` also map these.
"""

from protean.exceptions import ObjectNotFoundError, ProteanException, ValidationError


class InvalidInput(ValidationError):
    """Request rejected before any state was touched."""


class InvalidQuantity(InvalidInput):
    """A line quantity was zero or negative."""


class InsufficientStock(ValidationError):
    """A product does not hold enough stock for the requested quantity."""


class NotFound(ObjectNotFoundError):
    """A referenced record does not exist."""


class ProductNotFound(NotFound):
    pass


class OrderNotFound(NotFound):
    pass


class JobNotFound(NotFound):
    pass


class PersistenceFailure(ProteanException):
    """The store could not durably commit a change."""
