# NG-HEADER: Nombre de archivo: ledger.py
# NG-HEADER: Ubicación: services/inventory/ledger.py
# NG-HEADER: Descripción: Libro de stock: bloqueo de productos y registro de movimientos.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Libro de stock.

Toda modificación de ``Product.stock_actual`` pasa por ``apply_movement``,
que exige el producto bloqueado y escribe el ``StockMovement`` en la misma
transacción. Ningún otro módulo asigna ``stock_actual`` directamente.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Product, StockMovement

from .errors import CapacityError, InsufficientStockError, InternalError, ValidationError

logger = logging.getLogger("inventario.ledger")

# Signo del delta admitido por cada tipo de movimiento
_SIGN_BY_TYPE = {"entrada": 1, "salida": -1}


def inventory_event_log(logger_name: str, event: str, **fields) -> None:
    """Registra un evento de negocio en una sola línea ``<area>_event <evento> <json>``."""
    log = logging.getLogger(logger_name)
    area = logger_name.rsplit(".", 1)[-1].rstrip("s")
    flat = {k: v for k, v in fields.items() if v is not None}
    log.info("%s_event %s %s", area, event, json.dumps(flat, default=str, ensure_ascii=False))


async def lock_products(db: AsyncSession, ids: Iterable[int]) -> dict[int, Product]:
    """Bloquea (``FOR UPDATE``) y relee los productos indicados en orden de id.

    El orden determinista evita deadlocks entre salidas concurrentes que tocan
    conjuntos solapados. ``populate_existing`` fuerza a releer el valor ya
    confirmado por quien tenía el lock antes. with_for_update es ignorado por
    SQLite y efectivo en Postgres.
    """
    wanted = sorted({int(i) for i in ids})
    if not wanted:
        return {}
    stmt = (
        select(Product)
        .where(Product.id.in_(wanted))
        .order_by(Product.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    res = await db.execute(stmt)
    return {p.id: p for p in res.scalars().all()}


async def lock_product(db: AsyncSession, product_id: int) -> Optional[Product]:
    locked = await lock_products(db, [product_id])
    return locked.get(int(product_id))


def ensure_capacity(product: Product, incoming: int) -> None:
    """Valida que ``incoming`` unidades entren bajo ``stock_maximo`` (0 = sin límite)."""
    maximo = int(product.stock_maximo or 0)
    if maximo > 0 and int(product.stock_actual or 0) + int(incoming) > maximo:
        raise CapacityError(
            "El stock máximo del producto sería superado. Ajusta el límite antes de recibir el pedido.",
            details={
                "productId": product.id,
                "stockActual": int(product.stock_actual or 0),
                "stockMaximo": maximo,
                "entrante": int(incoming),
            },
        )


def ensure_available(product: Product, requested: int) -> None:
    if int(requested) > int(product.stock_actual or 0):
        raise InsufficientStockError(
            product.id, product.nombre, int(requested), int(product.stock_actual or 0)
        )


def apply_movement(
    db: AsyncSession,
    product: Product,
    *,
    tipo: str,
    delta: int,
    motivo: str,
    usuario_id: Optional[int] = None,
    observacion: Optional[str] = None,
    pedido_id: Optional[int] = None,
    salida_id: Optional[int] = None,
    detalle_salida_id: Optional[int] = None,
) -> StockMovement:
    """Aplica ``delta`` a ``stock_actual`` y agrega el movimiento pareado.

    ``product`` debe haber sido obtenido con ``lock_products``/``lock_product``.
    ``entrada`` exige delta positivo, ``salida`` negativo, ``ajuste`` cualquiera
    distinto de cero. El stock resultante nunca puede ser negativo.
    """
    if tipo not in ("entrada", "salida", "ajuste"):
        raise InternalError(f"Tipo de movimiento desconocido: {tipo}")
    delta = int(delta)
    if delta == 0:
        raise InternalError("Un movimiento de stock no puede tener cantidad 0")
    sign = _SIGN_BY_TYPE.get(tipo)
    if sign is not None and (delta > 0) != (sign > 0):
        raise InternalError(f"Signo inválido para movimiento {tipo}: {delta}")

    anterior = int(product.stock_actual or 0)
    nuevo = anterior + delta
    if nuevo < 0:
        if tipo == "salida":
            raise InsufficientStockError(product.id, product.nombre, -delta, anterior)
        raise ValidationError(
            f"El stock de {product.nombre} no puede quedar negativo",
            details={"productId": product.id, "stockActual": anterior, "delta": delta},
        )

    now = datetime.utcnow()
    product.stock_actual = nuevo
    product.ultima_fecha_movimiento = now
    mov = StockMovement(
        producto_id=product.id,
        tipo=tipo,
        motivo=motivo,
        cantidad=abs(delta),
        stock_anterior=anterior,
        stock_nuevo=nuevo,
        usuario_id=usuario_id,
        observacion=observacion,
        pedido_id=pedido_id,
        salida_id=salida_id,
        detalle_salida_id=detalle_salida_id,
        fecha_movimiento=now,
    )
    db.add(mov)
    logger.debug(
        "movimiento %s producto=%s %s -> %s (%s)", tipo, product.id, anterior, nuevo, motivo
    )
    return mov


async def outstanding_receipt(db: AsyncSession, pedido_id: int) -> Optional[StockMovement]:
    """Devuelve la recepción aplicada y no revertida del pedido, si existe.

    Se mira el último movimiento ``pedido_recibido``/``pedido_revertido`` del
    pedido: si es una recepción, el stock ya fue sumado.
    """
    stmt = (
        select(StockMovement)
        .where(
            StockMovement.pedido_id == pedido_id,
            StockMovement.motivo.in_(("pedido_recibido", "pedido_revertido")),
        )
        .order_by(StockMovement.id.desc())
        .limit(1)
    )
    last = (await db.execute(stmt)).scalar_one_or_none()
    if last is not None and last.motivo == "pedido_recibido":
        return last
    return None


__all__ = [
    "inventory_event_log",
    "lock_products",
    "lock_product",
    "ensure_capacity",
    "ensure_available",
    "apply_movement",
    "outstanding_receipt",
]
