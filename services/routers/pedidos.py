# NG-HEADER: Nombre de archivo: pedidos.py
# NG-HEADER: Ubicación: services/routers/pedidos.py
# NG-HEADER: Descripción: Endpoints de pedidos a suplidores (alta, cambios de estado y recepción).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Endpoints de pedidos a suplidores.

La lógica de estados y stock vive en ``services.inventory.pedidos``; aquí
sólo se resuelve la sesión y se serializa la respuesta.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from db.session import get_session
from services.auth import SessionData, require_admin, require_csrf, require_staff
from services.inventory.parsing import parse_datetime_filter
from services.inventory.pedidos import (
    PedidoChanges,
    PedidoCreate,
    create_pedido,
    get_pedido_view,
    list_pedidos,
    update_pedido,
)

router = APIRouter(prefix="/pedidos", tags=["pedidos"])


@router.get("", dependencies=[Depends(require_staff())])
async def list_pedidos_endpoint(
    estado: Optional[str] = None,
    supplier_id: Optional[int] = Query(None, alias="supplierId"),
    product_id: Optional[int] = Query(None, alias="productId"),
    desde: Optional[str] = Query(None, alias="from"),
    hasta: Optional[str] = Query(None, alias="to"),
    db: AsyncSession = Depends(get_session),
):
    items = await list_pedidos(
        db,
        estado=estado,
        supplier_id=supplier_id,
        product_id=product_id,
        desde=parse_datetime_filter(desde),
        hasta=parse_datetime_filter(hasta, end_of_day=True),
    )
    return [p.to_dict() for p in items]


@router.get("/{pedido_id}", dependencies=[Depends(require_staff())])
async def get_pedido_endpoint(pedido_id: int, db: AsyncSession = Depends(get_session)):
    return (await get_pedido_view(db, pedido_id)).to_dict()


@router.post("", status_code=201, dependencies=[Depends(require_csrf)])
async def create_pedido_endpoint(
    payload: dict,
    db: AsyncSession = Depends(get_session),
    sess: SessionData = Depends(require_admin()),
):
    """Registra un pedido en el estado por defecto.

    payload: supplierId, cantidadSolicitada, productTypeId, brandId, modelId,
    productId?, fechaEsperada?, costPrice?, productNameHint?
    """
    view = await create_pedido(db, PedidoCreate.from_payload(payload), usuario_id=sess.acting_user_id)
    return view.to_dict()


@router.patch("/{pedido_id}", dependencies=[Depends(require_csrf)])
async def update_pedido_endpoint(
    pedido_id: int,
    payload: dict,
    db: AsyncSession = Depends(get_session),
    sess: SessionData = Depends(require_admin()),
):
    """Cambia estado/cantidad/fechas. Entrar o salir de "recibido" mueve stock."""
    view = await update_pedido(
        db, pedido_id, PedidoChanges.from_payload(payload), usuario_id=sess.acting_user_id
    )
    return view.to_dict()
