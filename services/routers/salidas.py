# NG-HEADER: Nombre de archivo: salidas.py
# NG-HEADER: Ubicación: services/routers/salidas.py
# NG-HEADER: Descripción: Endpoints de salidas (ventas), su listado y el reporte Excel.
# NG-HEADER: Lineamientos: Ver AGENTS.md
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from db.session import get_session
from services.auth import SessionData, require_admin, require_csrf, require_staff
from services.inventory.parsing import parse_datetime_filter
from services.inventory.reports import build_report, parse_report_request
from services.inventory.salidas import (
    SalidaChanges,
    SalidaCreate,
    create_salida,
    get_salida_view,
    list_salidas,
    notify_admins_of_sale,
    update_salida,
)

router = APIRouter(prefix="/salidas", tags=["salidas"])


@router.get("", dependencies=[Depends(require_staff())])
async def list_salidas_endpoint(
    estado: Optional[str] = None,
    vendedor_id: Optional[int] = Query(None, alias="vendedorId"),
    desde: Optional[str] = Query(None, alias="from"),
    hasta: Optional[str] = Query(None, alias="to"),
    ticket: Optional[str] = None,
    db: AsyncSession = Depends(get_session),
):
    items = await list_salidas(
        db,
        estado=estado,
        vendedor_id=vendedor_id,
        desde=parse_datetime_filter(desde),
        hasta=parse_datetime_filter(hasta, end_of_day=True),
        ticket=ticket,
    )
    return [s.to_dict() for s in items]


# Declarado antes de /{salida_id} para que "report" no se tome como id
@router.get("/report", dependencies=[Depends(require_admin())])
async def salidas_report(
    start: Optional[str] = None,
    end: Optional[str] = None,
    scope: Optional[str] = None,
    fmt: Optional[str] = Query(None, alias="format"),
    db: AsyncSession = Depends(get_session),
):
    """Descarga el reporte de salidas/entradas del rango como Excel."""
    report = await build_report(db, parse_report_request(start, end, scope, fmt))
    return Response(
        content=report.content,
        media_type=report.media_type,
        headers={"Content-Disposition": f'attachment; filename="{report.filename}"'},
    )


@router.get("/{salida_id}", dependencies=[Depends(require_staff())])
async def get_salida_endpoint(salida_id: int, db: AsyncSession = Depends(get_session)):
    return (await get_salida_view(db, salida_id)).to_dict()


@router.post("", status_code=201, dependencies=[Depends(require_csrf)])
async def create_salida_endpoint(
    payload: dict,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_session),
    sess: SessionData = Depends(require_staff()),
):
    """Registra una salida y descuenta stock de forma atómica.

    payload: tipoSalida?, tipoVenta?, fechaEntrega?, estado?,
    productos: [{productId, cantidad, precioUnitario?}]
    El aviso a administradores corre después de responder.
    """
    result = await create_salida(db, SalidaCreate.from_payload(payload), vendedor_id=sess.acting_user_id)
    background_tasks.add_task(notify_admins_of_sale, result.notification)
    return result.view.to_dict()


@router.patch("/{salida_id}", dependencies=[Depends(require_staff()), Depends(require_csrf)])
async def update_salida_endpoint(
    salida_id: int,
    payload: dict,
    db: AsyncSession = Depends(get_session),
):
    view = await update_salida(db, salida_id, SalidaChanges.from_payload(payload))
    return view.to_dict()
