# backend/utils/errors.py
"""
Domain errors raised by the services layer.

Every error carries a code for programmatic handling, a human readable
message and a data dict with context. main.py renders them as JSON:

    {"detail": "Insufficient stock", "code": "INSUFFICIENT_STOCK",
     "data": {"available": 3, "requested": 5}}
"""
from typing import Any, Dict, Optional


class WarehouseError(Exception):
    status_code = 400
    default_code = "ERROR"
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None, **data: Any):
        self.code = code or self.default_code
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "code": self.code,
            "data": {k: (str(v) if not isinstance(v, (int, float, bool, str, list, type(None))) else v)
                     for k, v in self.data.items()},
        }


# Malformed input, rejected before anything is persisted
class ValidationFailed(WarehouseError):
    status_code = 422
    default_code = "VALIDATION_ERROR"
    default_message = "Validation error"


class NotFound(WarehouseError):
    status_code = 404
    default_code = "NOT_FOUND"
    default_message = "Record not found"


class InsufficientStock(WarehouseError):
    status_code = 409
    default_code = "INSUFFICIENT_STOCK"
    default_message = "Insufficient stock"

    @property
    def available(self) -> int:
        return self.data.get("available", 0)

    @property
    def requested(self) -> int:
        return self.data.get("requested", 0)


class AlreadyResolved(WarehouseError):
    status_code = 409
    default_code = "ALREADY_RESOLVED"
    default_message = "Alert already resolved"


# Bulk operation where some members fail the precondition; nothing was changed
class PartiallyInvalid(WarehouseError):
    status_code = 409
    default_code = "PARTIALLY_INVALID"
    default_message = "Some alerts are already resolved or do not exist"

    @property
    def invalid_ids(self) -> list:
        return self.data.get("invalid_ids", [])


# Duplicate keys and deletes blocked by dependent rows
class Conflict(WarehouseError):
    status_code = 409
    default_code = "CONFLICT"
    default_message = "Conflict"
