#!/usr/bin/env python
# NG-HEADER: Nombre de archivo: products.py
# NG-HEADER: Ubicación: services/routers/products.py
# NG-HEADER: Descripción: Endpoints de productos, alertas de stock e historial de movimientos.
# NG-HEADER: Lineamientos: Ver AGENTS.md
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from db.session import get_session
from services.auth import SessionData, require_admin, require_csrf, require_staff
from services.inventory.products import (
    create_product,
    delete_product,
    get_product,
    list_products,
    low_stock_alerts,
    stock_history,
    update_product,
)

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", dependencies=[Depends(require_staff())])
async def list_products_endpoint(
    search: Optional[str] = None,
    supplier_id: Optional[int] = Query(None, alias="supplierId"),
    available: Optional[bool] = None,
    db: AsyncSession = Depends(get_session),
):
    items = await list_products(db, search=search, supplier_id=supplier_id, available=available)
    return [p.to_dict() for p in items]


@router.get("/alerts", dependencies=[Depends(require_staff())])
async def products_alerts(db: AsyncSession = Depends(get_session)):
    """Productos en o por debajo del stock mínimo."""
    return [p.to_dict() for p in await low_stock_alerts(db)]


@router.get("/{product_id}", dependencies=[Depends(require_staff())])
async def get_product_endpoint(product_id: int, db: AsyncSession = Depends(get_session)):
    return (await get_product(db, product_id)).to_dict()


@router.post("", status_code=201, dependencies=[Depends(require_csrf)])
async def create_product_endpoint(
    payload: dict,
    db: AsyncSession = Depends(get_session),
    sess: SessionData = Depends(require_admin()),
):
    """Alta de producto; ``stockActual`` inicial queda registrado como entrada."""
    return (await create_product(db, payload, usuario_id=sess.acting_user_id)).to_dict()


@router.patch("/{product_id}", dependencies=[Depends(require_csrf)])
async def update_product_endpoint(
    product_id: int,
    payload: dict,
    db: AsyncSession = Depends(get_session),
    sess: SessionData = Depends(require_admin()),
):
    return (await update_product(db, product_id, payload, usuario_id=sess.acting_user_id)).to_dict()


@router.delete("/{product_id}", status_code=204, dependencies=[Depends(require_admin()), Depends(require_csrf)])
async def delete_product_endpoint(product_id: int, db: AsyncSession = Depends(get_session)):
    await delete_product(db, product_id)
    return Response(status_code=204)


@router.get("/{product_id}/stock/history", dependencies=[Depends(require_staff())])
async def product_stock_history(
    product_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_session),
):
    """Historial de movimientos de stock del producto (más recientes primero)."""
    out = await stock_history(db, product_id, page=page, page_size=page_size)
    return {"productId": product_id, **out}
