# NG-HEADER: Nombre de archivo: errors.py
# NG-HEADER: Ubicación: services/inventory/errors.py
# NG-HEADER: Descripción: Jerarquía de errores de negocio del inventario.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Errores de reglas de negocio.

Cada clase fija el status HTTP y el ``code`` que devuelve el handler
registrado en ``services.api``.
"""
from __future__ import annotations

from typing import Any, Optional


class InventoryError(Exception):
    """Error de reglas de negocio."""

    status_code = 400
    code = "inventory_error"

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(InventoryError):
    status_code = 400
    code = "validation_error"


class CapacityError(ValidationError):
    code = "capacity_exceeded"


class InsufficientStockError(ValidationError):
    code = "stock_insuficiente"

    def __init__(self, producto_id: int, nombre: str, solicitado: int, disponible: int) -> None:
        super().__init__(
            f"Stock insuficiente para {nombre}",
            details={
                "productId": producto_id,
                "solicitado": solicitado,
                "disponible": disponible,
            },
        )
        self.producto_id = producto_id


class NotFoundError(InventoryError):
    status_code = 404
    code = "not_found"


class ConflictError(InventoryError):
    status_code = 409
    code = "conflict"


class InternalError(InventoryError):
    status_code = 500
    code = "internal_error"


__all__ = [
    "InventoryError",
    "ValidationError",
    "CapacityError",
    "InsufficientStockError",
    "NotFoundError",
    "ConflictError",
    "InternalError",
]
