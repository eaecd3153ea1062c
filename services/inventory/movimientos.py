# NG-HEADER: Nombre de archivo: movimientos.py
# NG-HEADER: Ubicación: services/inventory/movimientos.py
# NG-HEADER: Descripción: Consultas de solo lectura sobre el libro de movimientos.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Listado y detalle de movimientos de inventario."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db.models import MOVEMENT_TYPES, StockMovement

from .errors import NotFoundError, ValidationError
from .mappers import MovementView, movement_view
from .salidas import get_salida_view


def _base_query():
    return select(StockMovement).options(
        selectinload(StockMovement.producto), selectinload(StockMovement.usuario)
    )


async def list_movements(
    db: AsyncSession,
    *,
    tipo: Optional[str] = None,
    product_id: Optional[int] = None,
    user_id: Optional[int] = None,
    desde: Optional[datetime] = None,
    hasta: Optional[datetime] = None,
    limit: int = 200,
) -> list[MovementView]:
    stmt = _base_query()
    if tipo:
        if tipo not in MOVEMENT_TYPES:
            raise ValidationError("Tipo de movimiento no válido")
        stmt = stmt.where(StockMovement.tipo == tipo)
    if product_id:
        stmt = stmt.where(StockMovement.producto_id == product_id)
    if user_id:
        stmt = stmt.where(StockMovement.usuario_id == user_id)
    if desde:
        stmt = stmt.where(StockMovement.fecha_movimiento >= desde)
    if hasta:
        stmt = stmt.where(StockMovement.fecha_movimiento <= hasta)
    stmt = stmt.order_by(StockMovement.fecha_movimiento.desc(), StockMovement.id.desc()).limit(limit)
    return [movement_view(m) for m in (await db.execute(stmt)).scalars().all()]


async def movement_detail(db: AsyncSession, movement_id: int) -> dict[str, Any]:
    """Movimiento y, si es una salida, el ticket completo que lo originó."""
    mov = (await db.execute(_base_query().where(StockMovement.id == movement_id))).scalar_one_or_none()
    if mov is None:
        raise NotFoundError("Movimiento no encontrado")
    ticket = None
    if mov.tipo == "salida" and mov.salida_id is not None:
        ticket = (await get_salida_view(db, mov.salida_id)).to_dict()
    return {"movimiento": movement_view(mov).to_dict(), "ticket": ticket}
