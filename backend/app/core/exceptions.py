"""
Erreurs typées du coeur OMS.

Chaque erreur porte un `code` stable (lisible machine) et des données
structurées ; la couche HTTP ne fait que traduire `code` -> status.
"""

from __future__ import annotations

from typing import Any


class OMSError(Exception):
    code: str = "OMS_ERROR"

    def __init__(self, message: str, **data: Any) -> None:
        super().__init__(message)
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.data}


class ValidationError(OMSError):
    code = "VALIDATION_ERROR"


class NotFoundError(OMSError):
    code = "NOT_FOUND"


class UnauthorizedActor(OMSError):
    code = "UNAUTHORIZED_ACTOR"


class InvalidStateTransition(OMSError):
    code = "INVALID_STATE_TRANSITION"

    def __init__(self, order_id: int, current: str, requested: str) -> None:
        super().__init__(
            f"Cannot move order {order_id} from {current} to {requested}",
            order_id=order_id,
            current=current,
            requested=requested,
        )
        self.order_id = order_id
        self.current = current
        self.requested = requested


class ExpiredOrder(OMSError):
    code = "ORDER_EXPIRED"

    def __init__(self, order_id: int) -> None:
        super().__init__(f"Order {order_id} has expired", order_id=order_id)
        self.order_id = order_id


class InsufficientInventory(OMSError):
    code = "INSUFFICIENT_INVENTORY"

    def __init__(self, unavailable: list[str]) -> None:
        super().__init__(
            f"Insufficient inventory for: {', '.join(unavailable)}",
            unavailable=unavailable,
        )
        self.unavailable = unavailable


class LedgerConsistencyError(OMSError):
    code = "LEDGER_CONSISTENCY"


class PersistenceError(OMSError):
    code = "PERSISTENCE_ERROR"
