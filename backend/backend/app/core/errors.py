from __future__ import annotations

from decimal import Decimal
from typing import Any


class ManufacturingError(Exception):
    """Base class for errors surfaced to callers of the manufacturing core."""

    status_code = 500
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message}


class NotFoundError(ManufacturingError):
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(ManufacturingError):
    status_code = 422


class InsufficientStockError(ManufacturingError):
    """Business-rule failure. Carries one entry per short inventory item."""

    status_code = 409

    def __init__(self, shortages: list[dict[str, Any]], message: str = "Insufficient stock for manufacturing"):
        super().__init__(message)
        self.shortages = shortages

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "insufficient_items": [
                {k: (float(v) if isinstance(v, Decimal) else v) for k, v in s.items()}
                for s in self.shortages
            ],
        }


class ConcurrencyConflictError(ManufacturingError):
    status_code = 409
    retryable = True


class StorageFailureError(ManufacturingError):
    status_code = 500
