# NG-HEADER: Nombre de archivo: salidas.py
# NG-HEADER: Ubicación: services/inventory/salidas.py
# NG-HEADER: Descripción: Registro de salidas (ventas) con descuento atómico de stock.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Salidas de almacén.

``create_salida`` valida todas las líneas contra los productos bloqueados
antes de escribir nada; si alguna regla falla no queda ni cabecera, ni
detalle, ni movimiento. Una vez creada, sólo cambian estado y fecha de entrega.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db import session as db_session
from db.models import PAYMENT_TYPES, SALE_CHANNELS, DetalleSalida, Role, Salida, StockMovement, User
from inventario_core.config import settings
from services.notifications.email import (
    SaleNotification,
    SaleNotificationLine,
    send_sale_notification_email,
)

from .errors import NotFoundError, ValidationError
from .estados import DEFAULT_SALIDA_ESTADO, active_salida_estados, pick_default_salida_estado
from .ledger import apply_movement, ensure_available, inventory_event_log, lock_products
from .mappers import SalidaView, detalle_view, salida_view
from .parsing import UNSET, first_key, parse_date, parse_id, parse_money, parse_quantity, parse_text
from .uow import unit_of_work

LOGGER_NAME = "inventario.salidas"
logger = logging.getLogger(LOGGER_NAME)

_TICKET_ATTEMPTS = 5


@dataclass
class LineaSalida:
    product_id: int
    cantidad: int
    precio_unitario: Optional[Decimal] = None


@dataclass
class SalidaCreate:
    lineas: list[LineaSalida]
    tipo_salida: str = "tienda"
    tipo_venta: str = "contado"
    fecha_entrega: Optional[date] = None
    estado: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SalidaCreate":
        productos = first_key(payload, "productos", "items")
        if not isinstance(productos, list) or not productos:
            raise ValidationError("Debes enviar al menos un producto")
        tipo_salida = parse_text(first_key(payload, "tipoSalida")) or "tienda"
        if tipo_salida not in SALE_CHANNELS:
            raise ValidationError("Tipo de salida no válido")
        tipo_venta = parse_text(first_key(payload, "tipoVenta")) or "contado"
        if tipo_venta not in PAYMENT_TYPES:
            raise ValidationError("Tipo de venta no válido")

        lineas: list[LineaSalida] = []
        seen: set[int] = set()
        for item in productos:
            if not isinstance(item, Mapping):
                raise ValidationError("Algún producto no existe")
            pid = parse_id(first_key(item, "productId", "productoId"), "Algún producto no existe")
            if pid in seen:
                raise ValidationError("Cada producto sólo puede aparecer una vez por salida")
            seen.add(pid)
            precio = first_key(item, "precioUnitario", "precio")
            lineas.append(
                LineaSalida(
                    product_id=pid,
                    cantidad=parse_quantity(first_key(item, "cantidad")),
                    precio_unitario=(
                        None if precio in (None, "", UNSET) else parse_money(precio, "Precio de producto inválido")
                    ),
                )
            )
        return cls(
            lineas=lineas,
            tipo_salida=tipo_salida,
            tipo_venta=tipo_venta,
            fecha_entrega=parse_date(first_key(payload, "fechaEntrega"), "Fecha de entrega no válida"),
            estado=parse_text(first_key(payload, "estado")),
        )


@dataclass
class SalidaChanges:
    estado: Any = UNSET
    fecha_entrega: Any = UNSET

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SalidaChanges":
        changes = cls()
        estado = first_key(payload, "estado")
        if estado is not UNSET:
            changes.estado = parse_text(estado)
            if changes.estado is None:
                raise ValidationError("Estado de salida no válido")
        fecha = first_key(payload, "fechaEntrega")
        if fecha is not UNSET:
            changes.fecha_entrega = parse_date(fecha, "Fecha de entrega no válida")
        return changes


@dataclass
class SalidaResult:
    view: SalidaView
    notification: SaleNotification = field(repr=False)


def generate_ticket(now: Optional[datetime] = None) -> str:
    """``TKT-YYYYMMDDHHMMSS-XXXX`` con 4 hex aleatorios."""
    now = now or datetime.utcnow()
    return f"TKT-{now.strftime('%Y%m%d%H%M%S')}-{secrets.token_hex(2).upper()}"


async def _unique_ticket(db: AsyncSession) -> str:
    for _ in range(_TICKET_ATTEMPTS):
        ticket = generate_ticket()
        taken = (await db.execute(select(Salida.id).where(Salida.ticket == ticket))).scalar_one_or_none()
        if taken is None:
            return ticket
    # Colisión persistente: ampliar el sufijo aleatorio
    return f"{generate_ticket()}{secrets.token_hex(2).upper()}"


async def _validate_estado(db: AsyncSession, estado: Optional[str]) -> str:
    activos = await active_salida_estados(db)
    if estado is None:
        return pick_default_salida_estado(activos)
    if estado in activos or (not activos and estado == DEFAULT_SALIDA_ESTADO):
        return estado
    raise ValidationError("Estado de salida no válido")


def _channel_price(product, tipo_salida: str) -> Decimal:
    raw = product.precio_ruta if tipo_salida == "ruta" else product.precio_tienda
    return Decimal(str(raw if raw is not None else 0)).quantize(Decimal("0.01"))


async def create_salida(db: AsyncSession, data: SalidaCreate, *, vendedor_id: Optional[int]) -> SalidaResult:
    """Registra la salida, sus líneas y un movimiento ``salida`` por producto."""
    async with unit_of_work(db):
        estado = await _validate_estado(db, data.estado)

        products = await lock_products(db, [ln.product_id for ln in data.lineas])
        if len(products) != len(data.lineas):
            raise ValidationError("Algún producto no existe")

        priced: list[tuple[LineaSalida, Decimal, Decimal]] = []
        total = Decimal("0.00")
        for ln in data.lineas:
            product = products[ln.product_id]
            precio = ln.precio_unitario if ln.precio_unitario is not None else _channel_price(product, data.tipo_salida)
            if precio <= 0:
                raise ValidationError("Precio de producto inválido", details={"productId": product.id})
            ensure_available(product, ln.cantidad)
            subtotal = (precio * ln.cantidad).quantize(Decimal("0.01"))
            total += subtotal
            priced.append((ln, precio, subtotal))

        salida = Salida(
            ticket=await _unique_ticket(db),
            vendedor_id=vendedor_id,
            fecha_salida=datetime.utcnow(),
            fecha_entrega=data.fecha_entrega,
            total=total,
            estado=estado,
            tipo_salida=data.tipo_salida,
            tipo_venta=data.tipo_venta,
        )
        db.add(salida)
        await db.flush()

        detalles = []
        lines_for_mail: list[SaleNotificationLine] = []
        for ln, precio, subtotal in priced:
            product = products[ln.product_id]
            detalle = DetalleSalida(
                salida_id=salida.id,
                producto_id=product.id,
                cantidad=ln.cantidad,
                precio_unitario=precio,
                subtotal=subtotal,
            )
            db.add(detalle)
            await db.flush()
            mov = apply_movement(
                db,
                product,
                tipo="salida",
                delta=-ln.cantidad,
                motivo="salida",
                usuario_id=vendedor_id,
                observacion=f"Salida {salida.ticket}",
                salida_id=salida.id,
                detalle_salida_id=detalle.id,
            )
            detalle.producto = product
            detalles.append(detalle_view(detalle, mov))
            lines_for_mail.append(
                SaleNotificationLine(
                    nombre=product.nombre,
                    cantidad=ln.cantidad,
                    precio_unitario=float(precio),
                    subtotal=float(subtotal),
                )
            )
        await db.flush()
        await db.refresh(salida, attribute_names=["vendedor"])
        vendedor = salida.vendedor
        view = salida_view(salida, detalles=detalles)

    inventory_event_log(
        LOGGER_NAME,
        "salida_created",
        salida_id=view.id,
        ticket=view.ticket,
        total=view.total,
        lineas=len(detalles),
        vendedor_id=vendedor_id,
    )
    notification = SaleNotification(
        ticket=view.ticket,
        total=view.total,
        estado=view.estado,
        tipo_venta=view.tipo_venta,
        tipo_salida=view.tipo_salida,
        vendedor=(vendedor.nombre_completo if vendedor else None) or "Sin vendedor",
        fecha=salida.fecha_salida,
        detalles=lines_for_mail,
    )
    return SalidaResult(view=view, notification=notification)


def _salida_query():
    return select(Salida).options(
        selectinload(Salida.vendedor),
        selectinload(Salida.detalles).selectinload(DetalleSalida.producto),
    )


async def get_salida_view(db: AsyncSession, salida_id: int) -> SalidaView:
    stmt = _salida_query().where(Salida.id == salida_id).execution_options(populate_existing=True)
    salida = (await db.execute(stmt)).scalar_one_or_none()
    if salida is None:
        raise NotFoundError("Salida no encontrada")
    movs = (
        await db.execute(select(StockMovement).where(StockMovement.salida_id == salida_id))
    ).scalars().all()
    by_detalle = {m.detalle_salida_id: m for m in movs}
    return salida_view(salida, detalles=[detalle_view(d, by_detalle.get(d.id)) for d in salida.detalles])


async def list_salidas(
    db: AsyncSession,
    *,
    estado: Optional[str] = None,
    vendedor_id: Optional[int] = None,
    desde: Optional[datetime] = None,
    hasta: Optional[datetime] = None,
    ticket: Optional[str] = None,
    limit: int = 50,
) -> list[SalidaView]:
    stmt = _salida_query()
    if estado:
        stmt = stmt.where(Salida.estado == estado)
    if vendedor_id:
        stmt = stmt.where(Salida.vendedor_id == vendedor_id)
    if desde:
        stmt = stmt.where(Salida.fecha_salida >= desde)
    if hasta:
        stmt = stmt.where(Salida.fecha_salida <= hasta)
    if ticket and ticket.strip():
        stmt = stmt.where(func.lower(Salida.ticket).like(f"%{ticket.strip().lower()}%"))
    stmt = stmt.order_by(Salida.fecha_salida.desc(), Salida.id.desc()).limit(limit)
    return [salida_view(s) for s in (await db.execute(stmt)).scalars().all()]


async def update_salida(db: AsyncSession, salida_id: int, changes: SalidaChanges) -> SalidaView:
    """Sólo estado y fecha de entrega; las líneas son inmutables."""
    async with unit_of_work(db):
        stmt = (
            select(Salida)
            .where(Salida.id == salida_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        salida = (await db.execute(stmt)).scalar_one_or_none()
        if salida is None:
            raise NotFoundError("Salida no encontrada")
        if changes.estado is UNSET and changes.fecha_entrega is UNSET:
            raise ValidationError("No hay campos para actualizar")
        if changes.estado is not UNSET:
            salida.estado = await _validate_estado(db, changes.estado)
        if changes.fecha_entrega is not UNSET:
            salida.fecha_entrega = changes.fecha_entrega
        await db.flush()
    inventory_event_log(LOGGER_NAME, "salida_updated", salida_id=salida_id, estado=salida.estado)
    return await get_salida_view(db, salida_id)


async def admin_emails(db: AsyncSession) -> list[str]:
    stmt = (
        select(User.email)
        .join(Role, Role.id == User.role_id)
        .where(Role.nombre == settings.admin_role, User.activo.is_(True))
    )
    return [e for e in (await db.execute(stmt)).scalars().all() if e]


async def notify_admins_of_sale(notification: SaleNotification) -> bool:
    """Aviso posterior al commit; los errores se registran y nunca se propagan."""
    try:
        async with db_session.SessionLocal() as db:
            recipients = await admin_emails(db)
        if not recipients:
            logger.debug("Sin administradores activos para notificar la salida %s", notification.ticket)
            return False
        return await send_sale_notification_email(recipients, notification)
    except Exception:
        logger.exception("No se pudo notificar a administradores sobre la salida %s", notification.ticket)
        return False


__all__ = [
    "SalidaCreate",
    "SalidaChanges",
    "SalidaResult",
    "LineaSalida",
    "create_salida",
    "update_salida",
    "get_salida_view",
    "list_salidas",
    "generate_ticket",
    "notify_admins_of_sale",
]
