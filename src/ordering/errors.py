"""Domain error types for the Ordering context.

Business rule violations are ValidationErrors carrying a ``{field: [messages]}``
dict, so the API layer renders all of them the same way. The subclasses
below let callers tell stock and state-machine denials apart.
"""

from protean.exceptions import ValidationError


class InsufficientStock(ValidationError):
    """A reservation would exceed the product's live stock."""


class InvalidTransition(ValidationError):
    """The order cannot move from its current status to the requested one."""


class DuplicateOrderNumber(ValidationError):
    """A generated order number is already taken."""


class TransientError(Exception):
    """A retryable infrastructure failure (storage hiccup, collaborator timeout)."""
