# Overview: Domain error taxonomy shared by services and routes.

"""
Domain errors raised by the service layer.

Every error carries a human-readable message and an optional `details` dict
(structured context such as the product and quantities behind a stock
failure). Routes translate them with `error_response()`; services never build
HTTP responses themselves.

TenantAccessError is a NotFoundError on purpose: an entity owned by another
tenant must be indistinguishable from a missing one at the transport level,
while staying distinguishable internally for the security audit trail.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for expected, client-facing failures."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(DomainError):
    """Referenced entity does not exist (within the caller's tenant)."""
    status_code = 404


class TenantAccessError(NotFoundError):
    """Referenced entity exists but belongs to a different tenant."""

    def __init__(
        self,
        message: str,
        *,
        resource: str | None = None,
        entity_id: int | None = None,
        main_user_id: int | None = None,
        actor_user_id: int | None = None,
        owner_user_id: int | None = None,
    ):
        super().__init__(message)
        self.resource = resource
        self.entity_id = entity_id
        self.main_user_id = main_user_id
        self.actor_user_id = actor_user_id
        self.owner_user_id = owner_user_id


class AuthenticationError(DomainError):
    """Invalid credentials, inactive account or unusable session."""
    status_code = 401


class UnauthorizedOperationError(DomainError):
    """Caller is authenticated but may not perform this operation."""
    status_code = 403


class ConflictError(DomainError):
    """Uniqueness violation or a deletion blocked by references."""
    status_code = 409


class BusinessRuleViolation(DomainError):
    """Request is well-formed but breaks a domain rule."""
    status_code = 422


class InsufficientStockError(BusinessRuleViolation):
    """A decrease would drive a product's stock below zero."""

    def __init__(self, *, product_id: int, product_name: str, required: int, available: int):
        super().__init__(
            f"Insufficient stock for product: {product_name} (ID: {product_id}). "
            f"Required: {required}, Available: {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "required": required,
                "available": available,
            },
        )
        self.product_id = product_id
        self.required = required
        self.available = available


def error_response(exc: DomainError) -> tuple[dict, int]:
    """Project a domain error onto a JSON body and status code."""
    body: dict = {"error": exc.message}
    if exc.details:
        body["details"] = exc.details
    return body, exc.status_code
