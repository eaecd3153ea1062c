# NG-HEADER: Nombre de archivo: test_pedidos_flow.py
# NG-HEADER: Ubicación: tests/test_pedidos_flow.py
# NG-HEADER: Descripción: Ciclo de vida de pedidos: recepción, reversión, capacidad y duplicados
# NG-HEADER: Lineamientos: Ver AGENTS.md
import pytest
from sqlalchemy import func, select

from db.models import Pedido, PedidoEstado, Product, StockMovement
from services.inventory.errors import CapacityError, ConflictError, NotFoundError, ValidationError
from services.inventory.pedidos import PedidoChanges, PedidoCreate, create_pedido, update_pedido


def _payload(catalog, **extra):
    base = {
        "supplierId": catalog["supplier"].id,
        "cantidadSolicitada": 5,
        "productTypeId": catalog["tipo"].id,
        "brandId": catalog["marca"].id,
        "modelId": catalog["modelo"].id,
    }
    base.update(extra)
    return base


async def _movements(db, pedido_id):
    stmt = select(StockMovement).where(StockMovement.pedido_id == pedido_id).order_by(StockMovement.id)
    return (await db.execute(stmt)).scalars().all()


async def _stock(db, product_id):
    return (
        await db.execute(select(Product.stock_actual).where(Product.id == product_id))
    ).scalar_one()


@pytest.mark.asyncio
async def test_receive_then_revert_round_trip(db, catalog, make_product):
    product = await make_product(stock=10, maximo=100)
    view = await create_pedido(db, PedidoCreate.from_payload(_payload(catalog, productId=product.id)), usuario_id=None)
    assert view.estado == "Pendiente"
    assert view.producto_nombre == "Samsung A15"

    received = await update_pedido(db, view.id, PedidoChanges.from_payload({"estado": "Recibido"}), usuario_id=None)
    assert received.fecha_recibido is not None
    assert await _stock(db, product.id) == 15

    reverted = await update_pedido(db, view.id, PedidoChanges.from_payload({"estado": "Pendiente"}), usuario_id=None)
    assert reverted.fecha_recibido is None
    assert await _stock(db, product.id) == 10

    movs = await _movements(db, view.id)
    assert [(m.tipo, m.motivo, m.cantidad) for m in movs] == [
        ("entrada", "pedido_recibido", 5),
        ("ajuste", "pedido_revertido", 5),
    ]
    assert movs[0].observacion == f"Pedido {view.id} recibido"
    assert (movs[1].stock_anterior, movs[1].stock_nuevo) == (15, 10)


@pytest.mark.asyncio
async def test_reconfirming_received_is_idempotent(db, catalog, make_product):
    product = await make_product(stock=0)
    view = await create_pedido(db, PedidoCreate.from_payload(_payload(catalog, productId=product.id)), usuario_id=None)
    for _ in range(2):
        await update_pedido(db, view.id, PedidoChanges.from_payload({"estado": "Recibido"}), usuario_id=None)
    # Un cambio de fecha estando recibido tampoco mueve stock
    await update_pedido(db, view.id, PedidoChanges.from_payload({"fechaEsperada": "2024-06-01"}), usuario_id=None)
    assert await _stock(db, product.id) == 5
    assert len(await _movements(db, view.id)) == 1


@pytest.mark.asyncio
async def test_receive_auto_creates_product(db, catalog):
    view = await create_pedido(db, PedidoCreate.from_payload(_payload(catalog, cantidadSolicitada=7)), usuario_id=None)
    assert view.producto_id is None
    assert view.producto_nombre == "Samsung A15"

    received = await update_pedido(db, view.id, PedidoChanges.from_payload({"estado": "Recibido"}), usuario_id=None)
    assert received.producto_id is not None
    product = await db.get(Product, received.producto_id, populate_existing=True)
    assert product.stock_actual == 7
    assert product.stock_maximo == 7
    assert float(product.precio_tienda) == 0.0
    assert product.suplidor_id == catalog["supplier"].id


@pytest.mark.asyncio
async def test_capacity_exceeded_leaves_everything_untouched(db, catalog, make_product):
    product = await make_product(stock=8, maximo=10)
    view = await create_pedido(db, PedidoCreate.from_payload(_payload(catalog, productId=product.id)), usuario_id=None)
    with pytest.raises(CapacityError):
        await update_pedido(db, view.id, PedidoChanges.from_payload({"estado": "Recibido"}), usuario_id=None)
    assert await _stock(db, product.id) == 8
    estado = (await db.execute(select(Pedido.estado).where(Pedido.id == view.id))).scalar_one()
    assert estado == "Pendiente"
    assert await _movements(db, view.id) == []


@pytest.mark.asyncio
async def test_revert_blocked_when_stock_was_sold(db, catalog, make_product):
    product = await make_product(stock=0)
    view = await create_pedido(db, PedidoCreate.from_payload(_payload(catalog, productId=product.id)), usuario_id=None)
    await update_pedido(db, view.id, PedidoChanges.from_payload({"estado": "Recibido"}), usuario_id=None)
    await db.execute(Product.__table__.update().where(Product.id == product.id).values(stock_actual=2))
    await db.commit()
    with pytest.raises(ValidationError, match="No hay stock disponible para revertir"):
        await update_pedido(db, view.id, PedidoChanges.from_payload({"estado": "Cancelado"}), usuario_id=None)
    assert await _stock(db, product.id) == 2


@pytest.mark.asyncio
async def test_quantity_locked_while_received(db, catalog, make_product):
    product = await make_product(stock=0)
    view = await create_pedido(db, PedidoCreate.from_payload(_payload(catalog, productId=product.id)), usuario_id=None)
    await update_pedido(db, view.id, PedidoChanges.from_payload({"estado": "Recibido"}), usuario_id=None)
    with pytest.raises(ValidationError, match="sin cambiar su estado"):
        await update_pedido(db, view.id, PedidoChanges.from_payload({"cantidadSolicitada": 9}), usuario_id=None)
    with pytest.raises(ValidationError, match="Cambia el estado"):
        await update_pedido(
            db, view.id, PedidoChanges.from_payload({"estado": "Recibido", "cantidadSolicitada": 9}), usuario_id=None
        )
    # Misma cantidad: no es un cambio
    await update_pedido(db, view.id, PedidoChanges.from_payload({"cantidadSolicitada": 5}), usuario_id=None)
    assert await _stock(db, product.id) == 5


@pytest.mark.asyncio
async def test_leave_received_and_change_quantity_reverts_original(db, catalog, make_product):
    product = await make_product(stock=0)
    view = await create_pedido(db, PedidoCreate.from_payload(_payload(catalog, productId=product.id)), usuario_id=None)
    await update_pedido(db, view.id, PedidoChanges.from_payload({"estado": "Recibido"}), usuario_id=None)
    updated = await update_pedido(
        db, view.id, PedidoChanges.from_payload({"estado": "Pendiente", "cantidadSolicitada": 9}), usuario_id=None
    )
    assert updated.cantidad_solicitada == 9
    assert await _stock(db, product.id) == 0
    await update_pedido(db, view.id, PedidoChanges.from_payload({"estado": "Recibido"}), usuario_id=None)
    assert await _stock(db, product.id) == 9


@pytest.mark.asyncio
async def test_duplicate_pending_order_conflicts(db, catalog, make_product):
    product = await make_product()
    payload = _payload(catalog, productId=product.id, fechaEsperada="2024-07-01")
    await create_pedido(db, PedidoCreate.from_payload(payload), usuario_id=None)
    with pytest.raises(ConflictError, match="Ya existe un pedido pendiente"):
        await create_pedido(db, PedidoCreate.from_payload(payload), usuario_id=None)
    # Otra cantidad ya no es duplicado
    await create_pedido(db, PedidoCreate.from_payload({**payload, "cantidadSolicitada": 6}), usuario_id=None)
    total = (await db.execute(select(func.count(Pedido.id)))).scalar_one()
    assert total == 2


@pytest.mark.asyncio
async def test_create_validations(db, catalog):
    with pytest.raises(ValidationError, match="Suplidor y cantidad son obligatorios"):
        PedidoCreate.from_payload({"supplierId": catalog["supplier"].id})
    with pytest.raises(ValidationError, match="tipo, marca y modelo"):
        PedidoCreate.from_payload({"supplierId": 1, "cantidadSolicitada": 2, "brandId": 1})
    with pytest.raises(ValidationError, match="Suplidor no existe"):
        await create_pedido(db, PedidoCreate.from_payload(_payload(catalog, supplierId=999)), usuario_id=None)
    with pytest.raises(ValidationError, match="no pertenece a la marca"):
        await create_pedido(db, PedidoCreate.from_payload(_payload(catalog, brandId=999)), usuario_id=None)


@pytest.mark.asyncio
async def test_create_requires_configured_states(db, catalog):
    await db.execute(PedidoEstado.__table__.update().values(activo=False))
    await db.commit()
    with pytest.raises(ValidationError, match="Configura al menos un estado"):
        await create_pedido(db, PedidoCreate.from_payload(_payload(catalog)), usuario_id=None)


@pytest.mark.asyncio
async def test_update_rejects_unknown_state_and_missing_order(db, catalog):
    view = await create_pedido(db, PedidoCreate.from_payload(_payload(catalog)), usuario_id=None)
    with pytest.raises(ValidationError, match="Estado no válido"):
        await update_pedido(db, view.id, PedidoChanges.from_payload({"estado": "Perdido"}), usuario_id=None)
    with pytest.raises(ValidationError, match="No hay campos"):
        await update_pedido(db, view.id, PedidoChanges.from_payload({}), usuario_id=None)
    with pytest.raises(NotFoundError):
        await update_pedido(db, 999, PedidoChanges.from_payload({"estado": "Recibido"}), usuario_id=None)


@pytest.mark.asyncio
async def test_date_only_patch_on_deactivated_received_state_keeps_stock(db, catalog, make_product):
    product = await make_product(stock=0)
    db.add(PedidoEstado(nombre="Llegó", activo=True, posicion=3, fase="recibido"))
    await db.commit()
    view = await create_pedido(db, PedidoCreate.from_payload(_payload(catalog, productId=product.id)), usuario_id=None)
    await update_pedido(db, view.id, PedidoChanges.from_payload({"estado": "Llegó"}), usuario_id=None)
    assert await _stock(db, product.id) == 5

    await db.execute(PedidoEstado.__table__.update().where(PedidoEstado.nombre == "Llegó").values(activo=False))
    await db.commit()
    updated = await update_pedido(db, view.id, PedidoChanges.from_payload({"fechaEsperada": "2024-08-01"}), usuario_id=None)
    assert updated.estado == "Llegó"
    assert updated.fecha_recibido is not None
    assert await _stock(db, product.id) == 5
    assert [m.motivo for m in await _movements(db, view.id)] == ["pedido_recibido"]


@pytest.mark.asyncio
async def test_reclassified_state_does_not_move_stock_without_state_change(db, catalog, make_product):
    product = await make_product(stock=1)
    view = await create_pedido(db, PedidoCreate.from_payload(_payload(catalog, productId=product.id)), usuario_id=None)
    await db.execute(PedidoEstado.__table__.update().where(PedidoEstado.nombre == "Pendiente").values(fase="recibido"))
    await db.commit()
    await update_pedido(db, view.id, PedidoChanges.from_payload({"fechaEsperada": "2024-08-01"}), usuario_id=None)
    assert await _stock(db, product.id) == 1
    assert await _movements(db, view.id) == []
