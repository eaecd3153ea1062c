# NG-HEADER: Nombre de archivo: pedidos.py
# NG-HEADER: Ubicación: services/inventory/pedidos.py
# NG-HEADER: Descripción: Máquina de estados de pedidos a suplidores y recepción de stock.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Pedidos a suplidores.

Ciclo de vida:
- Alta en el estado por defecto (primer estado activo por posición y nombre).
- ``update_pedido`` cambia estado/cantidad/fechas bajo lock del pedido.
- Entrar en fase RECIBIDO suma la cantidad al stock (``entrada``/``pedido_recibido``),
  creando el producto si el pedido todavía no tenía uno.
- Salir de RECIBIDO resta la cantidad recibida (``ajuste``/``pedido_revertido``).
- La recepción vigente se detecta por el último movimiento del pedido, por lo
  que re-confirmar RECIBIDO nunca duplica stock.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db.models import Brand, Model, Pedido, Product, Supplier

from .errors import ConflictError, NotFoundError, ValidationError
from .estados import load_pedido_estados
from .ledger import (
    apply_movement,
    ensure_capacity,
    inventory_event_log,
    lock_product,
    outstanding_receipt,
)
from .mappers import PRODUCTO_PENDIENTE, PedidoView, pedido_view
from .parsing import (
    UNSET,
    first_key,
    parse_date,
    parse_id,
    parse_money,
    parse_quantity,
    parse_text,
)
from .uow import unit_of_work

LOGGER_NAME = "inventario.pedidos"


@dataclass
class PedidoCreate:
    supplier_id: int
    cantidad: int
    product_type_id: int
    brand_id: int
    model_id: int
    product_id: Optional[int] = None
    fecha_esperada: Optional[date] = None
    cost_price: Optional[Decimal] = None
    product_name_hint: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PedidoCreate":
        supplier = first_key(payload, "supplierId", "suplidorId")
        cantidad = first_key(payload, "cantidadSolicitada", "cantidad")
        if supplier in (None, "", UNSET) or cantidad in (None, "", UNSET, 0):
            raise ValidationError("Suplidor y cantidad son obligatorios")
        tipo = first_key(payload, "productTypeId", "tipoId")
        marca = first_key(payload, "brandId", "marcaId")
        modelo = first_key(payload, "modelId", "modeloId")
        if any(v in (None, "", UNSET) for v in (tipo, marca, modelo)):
            raise ValidationError("Debes seleccionar tipo, marca y modelo")
        cost = first_key(payload, "costPrice", "costoUnitario")
        return cls(
            supplier_id=parse_id(supplier, "Suplidor no existe"),
            cantidad=parse_quantity(cantidad),
            product_type_id=parse_id(tipo, "Tipo de producto no válido"),
            brand_id=parse_id(marca, "Marca no válida"),
            model_id=parse_id(modelo, "Modelo no válido"),
            product_id=parse_id(first_key(payload, "productId", "productoId"), "Producto no existe", required=False),
            fecha_esperada=parse_date(first_key(payload, "fechaEsperada"), "Fecha esperada no válida"),
            cost_price=_parse_cost(cost),
            product_name_hint=parse_text(first_key(payload, "productNameHint")),
        )


@dataclass
class PedidoChanges:
    """Campos presentes en un PATCH; ``UNSET`` = no enviado."""

    estado: Any = UNSET
    cantidad: Any = UNSET
    fecha_esperada: Any = UNSET
    fecha_recibido: Any = UNSET
    cost_price: Any = UNSET

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PedidoChanges":
        changes = cls()
        estado = first_key(payload, "estado")
        if estado is not UNSET:
            changes.estado = parse_text(estado)
            if changes.estado is None:
                raise ValidationError("Estado no válido")
        cantidad = first_key(payload, "cantidadSolicitada", "cantidad")
        if cantidad is not UNSET:
            changes.cantidad = parse_quantity(cantidad)
        fecha_esperada = first_key(payload, "fechaEsperada")
        if fecha_esperada is not UNSET:
            changes.fecha_esperada = parse_date(fecha_esperada, "Fecha esperada no válida")
        fecha_recibido = first_key(payload, "fechaRecibido")
        if fecha_recibido is not UNSET:
            changes.fecha_recibido = parse_date(fecha_recibido, "Fecha de recibido no válida")
        cost = first_key(payload, "costPrice", "costoUnitario")
        if cost is not UNSET:
            changes.cost_price = _parse_cost(cost)
        return changes

    def is_empty(self) -> bool:
        return all(
            v is UNSET
            for v in (self.estado, self.cantidad, self.fecha_esperada, self.fecha_recibido, self.cost_price)
        )


def _parse_cost(value: Any) -> Optional[Decimal]:
    if value in (None, "", UNSET):
        return None
    cost = parse_money(value, "Costo unitario no válido")
    if cost < 0:
        raise ValidationError("Costo unitario no válido")
    return cost


def _pedido_query():
    return select(Pedido).options(
        selectinload(Pedido.producto),
        selectinload(Pedido.suplidor),
        selectinload(Pedido.tipo_producto),
        selectinload(Pedido.marca),
        selectinload(Pedido.modelo),
    )


async def get_pedido_view(db: AsyncSession, pedido_id: int) -> PedidoView:
    stmt = _pedido_query().where(Pedido.id == pedido_id).execution_options(populate_existing=True)
    pedido = (await db.execute(stmt)).scalar_one_or_none()
    if pedido is None:
        raise NotFoundError("Pedido no encontrado")
    return pedido_view(pedido)


async def list_pedidos(
    db: AsyncSession,
    *,
    estado: Optional[str] = None,
    supplier_id: Optional[int] = None,
    product_id: Optional[int] = None,
    desde: Optional[datetime] = None,
    hasta: Optional[datetime] = None,
    limit: int = 100,
) -> list[PedidoView]:
    stmt = _pedido_query()
    if estado:
        stmt = stmt.where(Pedido.estado == estado)
    if supplier_id:
        stmt = stmt.where(Pedido.suplidor_id == supplier_id)
    if product_id:
        stmt = stmt.where(Pedido.producto_id == product_id)
    if desde:
        stmt = stmt.where(Pedido.fecha_pedido >= desde)
    if hasta:
        stmt = stmt.where(Pedido.fecha_pedido <= hasta)
    stmt = stmt.order_by(Pedido.fecha_pedido.desc(), Pedido.id.desc()).limit(limit)
    return [pedido_view(p) for p in (await db.execute(stmt)).scalars().all()]


async def create_pedido(db: AsyncSession, data: PedidoCreate, *, usuario_id: Optional[int]) -> PedidoView:
    """Registra un pedido en el estado por defecto.

    Rechaza (409) un pedido idéntico ya registrado en el estado por defecto
    para el mismo suplidor, cantidad, fecha esperada y producto (o descriptores).
    """
    async with unit_of_work(db):
        if await db.get(Supplier, data.supplier_id) is None:
            raise ValidationError("Suplidor no existe")
        estados = await load_pedido_estados(db)
        default = estados.default
        if default is None:
            raise ValidationError("Configura al menos un estado de pedido antes de crear solicitudes")

        modelo = (
            await db.execute(
                select(Model).options(selectinload(Model.marca)).where(Model.id == data.model_id)
            )
        ).scalar_one_or_none()
        if modelo is None:
            raise ValidationError("Modelo no válido")
        if modelo.marca_id != data.brand_id:
            raise ValidationError("El modelo no pertenece a la marca indicada")
        if modelo.tipo_producto_id != data.product_type_id:
            raise ValidationError("El modelo no pertenece al tipo de producto indicado")

        product_id = data.product_id
        nombre = data.product_name_hint
        tipo_id, marca_id, modelo_id = data.product_type_id, data.brand_id, data.model_id
        if product_id is not None:
            product = await db.get(Product, product_id)
            if product is None:
                raise ValidationError("Producto no existe")
            # El producto explícito manda sobre los descriptores enviados
            tipo_id, marca_id, modelo_id = product.tipo_producto_id, product.marca_id, product.modelo_id
            nombre = product.nombre
        else:
            existing = await find_product_by_descriptors(db, tipo_id, marca_id, modelo_id)
            if existing is not None:
                product_id = existing.id
                nombre = existing.nombre
        if not nombre:
            nombre = derive_product_name(modelo.marca.nombre if modelo.marca else None, modelo.nombre)

        dup = select(Pedido.id).where(
            Pedido.suplidor_id == data.supplier_id,
            Pedido.cantidad_solicitada == data.cantidad,
            Pedido.estado == default.nombre,
        )
        if data.fecha_esperada is None:
            dup = dup.where(Pedido.fecha_esperada.is_(None))
        else:
            dup = dup.where(Pedido.fecha_esperada == data.fecha_esperada)
        if product_id is not None:
            dup = dup.where(Pedido.producto_id == product_id)
        else:
            dup = dup.where(
                Pedido.producto_id.is_(None),
                Pedido.tipo_producto_id == tipo_id,
                Pedido.marca_id == marca_id,
                Pedido.modelo_id == modelo_id,
            )
        if (await db.execute(dup.limit(1))).scalar_one_or_none() is not None:
            raise ConflictError(
                "Ya existe un pedido pendiente con los mismos datos. Edita el que ya tienes registrado."
            )

        pedido = Pedido(
            producto_id=product_id,
            suplidor_id=data.supplier_id,
            tipo_producto_id=tipo_id,
            marca_id=marca_id,
            modelo_id=modelo_id,
            nombre_producto=nombre,
            cantidad_solicitada=data.cantidad,
            costo_unitario=data.cost_price,
            fecha_pedido=datetime.utcnow(),
            fecha_esperada=data.fecha_esperada,
            estado=default.nombre,
            usuario_id=usuario_id,
        )
        db.add(pedido)
        await db.flush()
        pedido_id = pedido.id

    inventory_event_log(
        LOGGER_NAME,
        "pedido_created",
        pedido_id=pedido_id,
        supplier_id=data.supplier_id,
        cantidad=data.cantidad,
        producto_id=product_id,
        estado=default.nombre,
    )
    return await get_pedido_view(db, pedido_id)


def derive_product_name(marca: Optional[str], modelo: Optional[str]) -> str:
    combined = f"{marca or ''} {modelo or ''}".strip()
    return combined or PRODUCTO_PENDIENTE


async def find_product_by_descriptors(
    db: AsyncSession,
    tipo_id: Optional[int],
    marca_id: Optional[int],
    modelo_id: Optional[int],
    *,
    lock: bool = False,
) -> Optional[Product]:
    if not (tipo_id and marca_id and modelo_id):
        return None
    stmt = (
        select(Product)
        .where(
            Product.tipo_producto_id == tipo_id,
            Product.marca_id == marca_id,
            Product.modelo_id == modelo_id,
        )
        .order_by(Product.id)
        .limit(1)
    )
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalar_one_or_none()


async def resolve_or_create_product_for_order(
    db: AsyncSession, pedido: Pedido, cantidad: int
) -> Product:
    """Devuelve el producto (bloqueado) al que se recibe el pedido.

    Orden: producto vinculado, producto existente con el mismo tipo/marca/modelo,
    y si no hay ninguno, un producto nuevo con precio y stock en 0 y
    ``stock_maximo = max(cantidad, 1)``. El pedido queda vinculado al resultado.
    """
    if pedido.producto_id is not None:
        product = await lock_product(db, pedido.producto_id)
        if product is not None:
            return product

    if not (pedido.tipo_producto_id and pedido.marca_id and pedido.modelo_id):
        raise ValidationError("No se pudo determinar el producto para este pedido")

    product = await find_product_by_descriptors(
        db, pedido.tipo_producto_id, pedido.marca_id, pedido.modelo_id, lock=True
    )
    if product is None:
        nombre = (pedido.nombre_producto or "").strip()
        if not nombre:
            marca = await db.get(Brand, pedido.marca_id)
            modelo = await db.get(Model, pedido.modelo_id)
            nombre = derive_product_name(
                marca.nombre if marca else None, modelo.nombre if modelo else None
            )
        product = Product(
            nombre=nombre,
            tipo_producto_id=pedido.tipo_producto_id,
            marca_id=pedido.marca_id,
            modelo_id=pedido.modelo_id,
            suplidor_id=pedido.suplidor_id,
            precio_tienda=Decimal("0"),
            precio_ruta=Decimal("0"),
            stock_actual=0,
            stock_minimo=0,
            stock_maximo=max(int(cantidad), 1),
            disponible=True,
        )
        db.add(product)
        await db.flush()
        inventory_event_log(
            LOGGER_NAME, "product_autocreated", pedido_id=pedido.id, producto_id=product.id, nombre=nombre
        )
    pedido.producto_id = product.id
    return product


async def _lock_pedido(db: AsyncSession, pedido_id: int) -> Optional[Pedido]:
    stmt = (
        select(Pedido)
        .where(Pedido.id == pedido_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def update_pedido(
    db: AsyncSession,
    pedido_id: int,
    changes: PedidoChanges,
    *,
    usuario_id: Optional[int],
) -> PedidoView:
    """Aplica un PATCH al pedido dentro de una transacción serializable.

    Todas las validaciones ocurren antes de tocar stock; cualquier error
    revierte la transacción completa.
    """
    applied: Optional[dict] = None
    reverted: Optional[dict] = None
    async with unit_of_work(db, isolation="SERIALIZABLE"):
        pedido = await _lock_pedido(db, pedido_id)
        if pedido is None:
            raise NotFoundError("Pedido no encontrado")
        if changes.is_empty():
            raise ValidationError("No hay campos para actualizar")

        estados = await load_pedido_estados(db)
        was_received = estados.is_received(pedido.estado)
        if changes.estado is not UNSET and changes.estado not in estados:
            raise ValidationError("Estado no válido")
        target_estado = pedido.estado if changes.estado is UNSET else changes.estado
        will_be_received = estados.is_received(target_estado)

        original_qty = int(pedido.cantidad_solicitada)
        target_qty = original_qty if changes.cantidad is UNSET else int(changes.cantidad)
        if was_received and will_be_received and target_qty != original_qty:
            if changes.estado is UNSET:
                raise ValidationError(
                    "No puedes ajustar la cantidad de un pedido recibido sin cambiar su estado."
                )
            raise ValidationError("Cambia el estado del pedido antes de modificar la cantidad recibida.")

        # Sólo un cambio de estado explícito mueve stock
        estado_changed = changes.estado is not UNSET
        receipt = await outstanding_receipt(db, pedido.id) if estado_changed else None
        should_apply = estado_changed and will_be_received and receipt is None
        should_revert = estado_changed and not will_be_received and receipt is not None

        product: Optional[Product] = None
        if should_apply:
            product = await resolve_or_create_product_for_order(db, pedido, target_qty)
            ensure_capacity(product, target_qty)
        elif should_revert:
            product = await lock_product(db, receipt.producto_id)
            if product is None or int(product.stock_actual or 0) < int(receipt.cantidad):
                raise ValidationError("No hay stock disponible para revertir este pedido.")

        if should_apply:
            mov = apply_movement(
                db,
                product,
                tipo="entrada",
                delta=target_qty,
                motivo="pedido_recibido",
                usuario_id=usuario_id,
                observacion=f"Pedido {pedido.id} recibido",
                pedido_id=pedido.id,
            )
            applied = {"producto_id": product.id, "cantidad": target_qty, "stock_nuevo": mov.stock_nuevo}
        elif should_revert:
            mov = apply_movement(
                db,
                product,
                tipo="ajuste",
                delta=-int(receipt.cantidad),
                motivo="pedido_revertido",
                usuario_id=usuario_id,
                observacion=f"Pedido {pedido.id} revertido",
                pedido_id=pedido.id,
            )
            reverted = {"producto_id": product.id, "cantidad": int(receipt.cantidad), "stock_nuevo": mov.stock_nuevo}

        pedido.estado = target_estado
        pedido.cantidad_solicitada = target_qty
        if changes.fecha_esperada is not UNSET:
            pedido.fecha_esperada = changes.fecha_esperada
        if changes.cost_price is not UNSET:
            pedido.costo_unitario = changes.cost_price
        if changes.fecha_recibido is not UNSET:
            pedido.fecha_recibido = changes.fecha_recibido
        elif changes.estado is not UNSET:
            if not will_be_received:
                pedido.fecha_recibido = None
            elif should_apply or pedido.fecha_recibido is None:
                pedido.fecha_recibido = date.today()
        await db.flush()

    if applied:
        inventory_event_log(LOGGER_NAME, "pedido_received", pedido_id=pedido_id, usuario_id=usuario_id, **applied)
    if reverted:
        inventory_event_log(LOGGER_NAME, "pedido_reverted", pedido_id=pedido_id, usuario_id=usuario_id, **reverted)
    return await get_pedido_view(db, pedido_id)


__all__ = [
    "PedidoCreate",
    "PedidoChanges",
    "create_pedido",
    "update_pedido",
    "get_pedido_view",
    "list_pedidos",
    "resolve_or_create_product_for_order",
    "find_product_by_descriptors",
    "derive_product_name",
]
