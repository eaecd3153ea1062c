# NG-HEADER: Nombre de archivo: test_stock_ledger.py
# NG-HEADER: Ubicación: tests/test_stock_ledger.py
# NG-HEADER: Descripción: Reglas del libro de stock: signos, no negativos, capacidad y recepción vigente
# NG-HEADER: Lineamientos: Ver AGENTS.md
import logging

import pytest
from sqlalchemy import select

from db.models import StockMovement
from services.inventory.errors import CapacityError, InsufficientStockError, InternalError, ValidationError
from services.inventory.ledger import (
    apply_movement,
    ensure_available,
    ensure_capacity,
    inventory_event_log,
    lock_products,
    outstanding_receipt,
)


@pytest.mark.asyncio
async def test_apply_movement_pairs_stock_and_ledger(db_session, make_product):
    product = await make_product(stock=5)
    locked = await lock_products(db_session, [product.id])
    mov = apply_movement(
        db_session, locked[product.id], tipo="entrada", delta=3, motivo="ajuste_manual", observacion="x"
    )
    await db_session.commit()
    assert (mov.stock_anterior, mov.stock_nuevo, mov.cantidad) == (5, 8, 3)
    assert locked[product.id].stock_actual == 8
    assert locked[product.id].ultima_fecha_movimiento == mov.fecha_movimiento


@pytest.mark.asyncio
async def test_apply_movement_rejects_wrong_sign_and_zero(db_session, make_product):
    product = await make_product(stock=5)
    with pytest.raises(InternalError):
        apply_movement(db_session, product, tipo="entrada", delta=-1, motivo="ajuste_manual")
    with pytest.raises(InternalError):
        apply_movement(db_session, product, tipo="salida", delta=2, motivo="salida")
    with pytest.raises(InternalError):
        apply_movement(db_session, product, tipo="ajuste", delta=0, motivo="ajuste_manual")
    with pytest.raises(InternalError):
        apply_movement(db_session, product, tipo="traslado", delta=1, motivo="ajuste_manual")
    assert product.stock_actual == 5


@pytest.mark.asyncio
async def test_stock_never_goes_negative(db_session, make_product):
    product = await make_product(stock=2)
    with pytest.raises(InsufficientStockError) as exc:
        apply_movement(db_session, product, tipo="salida", delta=-3, motivo="salida")
    assert exc.value.to_payload()["code"] == "stock_insuficiente"
    with pytest.raises(ValidationError):
        apply_movement(db_session, product, tipo="ajuste", delta=-3, motivo="ajuste_manual")
    assert product.stock_actual == 2
    # Exactamente el disponible deja el stock en cero
    mov = apply_movement(db_session, product, tipo="salida", delta=-2, motivo="salida")
    assert mov.stock_nuevo == 0


@pytest.mark.asyncio
async def test_capacity_and_availability_guards(make_product):
    product = await make_product(stock=8, maximo=10)
    ensure_capacity(product, 2)
    with pytest.raises(CapacityError) as exc:
        ensure_capacity(product, 3)
    assert exc.value.details["stockMaximo"] == 10

    unlimited = await make_product(nombre="Sin tope", stock=8, maximo=0)
    ensure_capacity(unlimited, 10_000)

    ensure_available(product, 8)
    with pytest.raises(InsufficientStockError, match="Stock insuficiente para Samsung A15"):
        ensure_available(product, 9)


@pytest.mark.asyncio
async def test_outstanding_receipt_follows_last_movement(db_session, make_product):
    product = await make_product(stock=0)
    assert await outstanding_receipt(db_session, 99) is None

    apply_movement(db_session, product, tipo="entrada", delta=4, motivo="pedido_recibido", pedido_id=None)
    await db_session.commit()
    rows = (await db_session.execute(select(StockMovement))).scalars().all()
    assert len(rows) == 1

    # Movimientos sin pedido_id no cuentan como recepción de ningún pedido
    assert await outstanding_receipt(db_session, 1) is None


def test_inventory_event_log_single_line(caplog):
    with caplog.at_level(logging.INFO, logger="inventario.pedidos"):
        inventory_event_log("inventario.pedidos", "pedido_received", pedido_id=3, nada=None)
    assert 'pedido_event pedido_received {"pedido_id": 3}' in caplog.text
