# NG-HEADER: Nombre de archivo: movimientos.py
# NG-HEADER: Ubicación: services/routers/movimientos.py
# NG-HEADER: Descripción: Consulta del libro de movimientos de inventario.
# NG-HEADER: Lineamientos: Ver AGENTS.md
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from db.session import get_session
from services.auth import require_admin
from services.inventory.movimientos import list_movements, movement_detail
from services.inventory.parsing import parse_datetime_filter

router = APIRouter(prefix="/movimientos", tags=["movimientos"], dependencies=[Depends(require_admin())])


@router.get("")
async def list_movimientos(
    tipo: Optional[str] = None,
    product_id: Optional[int] = Query(None, alias="productId"),
    user_id: Optional[int] = Query(None, alias="userId"),
    desde: Optional[str] = Query(None, alias="from"),
    hasta: Optional[str] = Query(None, alias="to"),
    db: AsyncSession = Depends(get_session),
):
    items = await list_movements(
        db,
        tipo=tipo,
        product_id=product_id,
        user_id=user_id,
        desde=parse_datetime_filter(desde),
        hasta=parse_datetime_filter(hasta, end_of_day=True),
    )
    return [m.to_dict() for m in items]


@router.get("/{movement_id}/detail")
async def get_movimiento_detail(movement_id: int, db: AsyncSession = Depends(get_session)):
    return await movement_detail(db, movement_id)
