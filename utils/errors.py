"""Error taxonomy shared by services and the HTTP error handlers."""
from __future__ import annotations


class AppError(Exception):
    """Base class for errors whose message is safe to return to the client."""

    status_code = 500

    def __init__(self, message: str, *, payload: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.payload:
            body["details"] = self.payload
        return body


class ValidationError(AppError):
    """Malformed input or missing required field."""

    status_code = 400


class InvalidItemData(ValidationError):
    """A purchased or utilised item entry has the wrong shape."""

    def __init__(self, category: str, index: int, entry, reason: str) -> None:
        super().__init__(
            f"Invalid {category} item at position {index}: {reason}",
            payload={"category": category, "index": index, "entry": entry},
        )
        self.category = category
        self.index = index
        self.entry = entry


class AuthError(AppError):
    status_code = 401


class ForbiddenError(AuthError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class BusinessRuleViolation(AppError):
    """A well-formed request that conflicts with the current ledger state."""

    status_code = 409


class InsufficientBudget(BusinessRuleViolation):
    def __init__(self, budget: float, expenditure: float, requested: float) -> None:
        remaining = budget - expenditure
        super().__init__(
            f"Insufficient budget: purchase costs {requested:g} but only {remaining:g} of {budget:g} remains",
            payload={"budget": budget, "expenditure": expenditure, "requested": requested},
        )
        self.budget = budget
        self.expenditure = expenditure
        self.requested = requested


class OutOfStock(BusinessRuleViolation):
    """Raised by the ledger when a utilisation cannot be covered by stock."""

    def __init__(self, message: str, item: str, requested: float, available: float) -> None:
        super().__init__(message, payload={"item": item, "requested": requested, "available": available})
        self.item = item
        self.requested = requested
        self.available = available


class ItemNotInInventory(OutOfStock):
    def __init__(self, item: str, requested: float) -> None:
        super().__init__(f"Item '{item}' not found in inventory", item, requested, 0)


class InsufficientQuantity(OutOfStock):
    def __init__(self, item: str, requested: float, available: float) -> None:
        super().__init__(
            f"Insufficient quantity for '{item}': requested {requested:g}, available {available:g}",
            item,
            requested,
            available,
        )


class ConcurrentModification(BusinessRuleViolation):
    def __init__(self, entity: str = "Project") -> None:
        super().__init__(f"{entity} was modified by another request. Please retry.")


class ExternalServiceError(Exception):
    """Raised inside the text-classification adapter; never leaves it."""
