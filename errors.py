"""Domain exceptions raised by the marketplace services."""


class MarketplaceError(Exception):
    """Base exception for all marketplace errors.

    Carries enough context (entity, id, offending field) for callers to
    render a user-facing message.
    """

    def __init__(self, message: str, entity: str | None = None,
                 entity_id: str | None = None, field: str | None = None):
        self.message = message
        self.entity = entity
        self.entity_id = entity_id
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "error_type": type(self).__name__,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "field": self.field,
        }


class ValidationError(MarketplaceError):
    """Raised for malformed or missing input."""


class NotFoundError(MarketplaceError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: str | None, message: str | None = None):
        super().__init__(
            message or f"{entity} not found with ID: {entity_id}",
            entity=entity,
            entity_id=entity_id,
        )


class AuthorizationError(MarketplaceError):
    """Raised when the caller does not own or did not create the resource."""


class ConflictError(MarketplaceError):
    """Raised when an invariant would be violated or a concurrent write won."""


class StateError(MarketplaceError):
    """Raised when an operation is invalid for the current lifecycle state."""


class CapacityError(MarketplaceError):
    """Raised when a requested quantity exceeds available stock."""

    def __init__(self, product_id: str, requested: int, available: int,
                 product_name: str | None = None):
        self.requested = requested
        self.available = available
        label = product_name or product_id
        super().__init__(
            f"Requested quantity ({requested}) exceeds available quantity "
            f"({available}) for product: {label}",
            entity="Product",
            entity_id=product_id,
            field="quantity",
        )


class InsufficientFundsError(MarketplaceError):
    """Raised when a withdrawal would drive a hospital balance negative."""

    def __init__(self, hospital_id: str, balance, amount):
        self.balance = balance
        self.amount = amount
        super().__init__(
            f"Insufficient balance for hospital {hospital_id}. "
            f"Available: {balance}, Required: {amount}",
            entity="Hospital",
            entity_id=hospital_id,
            field="amount",
        )
