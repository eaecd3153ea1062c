# NG-HEADER: Nombre de archivo: products.py
# NG-HEADER: Ubicación: services/inventory/products.py
# NG-HEADER: Descripción: Alta y edición de productos; ajustes de stock vía libro de movimientos.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Productos del inventario.

El stock inicial y cualquier edición de ``stockActual`` generan su
movimiento (``stock_inicial`` / ``ajuste_manual``) igual que pedidos y salidas.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db.models import Brand, DetalleSalida, Model, Pedido, Product, ProductType, StockMovement, Supplier

from .errors import ConflictError, NotFoundError, ValidationError
from .ledger import apply_movement, inventory_event_log, lock_product
from .mappers import MovementView, ProductView, movement_view, product_view
from .parsing import UNSET, first_key, parse_id, parse_money, parse_non_negative_int, parse_text
from .uow import unit_of_work

LOGGER_NAME = "inventario.products"

# clave del payload -> columna
_PRICE_FIELDS = {"precioTienda": "precio_tienda", "precioRuta": "precio_ruta"}
_LIMIT_FIELDS = {"stockMinimo": "stock_minimo", "stockMaximo": "stock_maximo"}
_FK_FIELDS = {
    "supplierId": ("suplidor_id", Supplier, "Suplidor no existe"),
    "productTypeId": ("tipo_producto_id", ProductType, "Tipo de producto no válido"),
    "brandId": ("marca_id", Brand, "Marca no válida"),
    "modelId": ("modelo_id", Model, "Modelo no válido"),
}


@dataclass
class ProductFields:
    values: dict[str, Any]
    stock_actual: Any = UNSET
    observacion: Optional[str] = None


def _parse_fields(payload: Mapping[str, Any], *, creating: bool) -> ProductFields:
    values: dict[str, Any] = {}
    nombre = first_key(payload, "nombre")
    if nombre is not UNSET or creating:
        nombre = parse_text(nombre if nombre is not UNSET else None)
        if not nombre:
            raise ValidationError("El nombre del producto es obligatorio")
        values["nombre"] = nombre
    if "descripcion" in payload:
        values["descripcion"] = parse_text(payload["descripcion"])
    for key, column in _PRICE_FIELDS.items():
        if key in payload:
            price = parse_money(payload[key] if payload[key] is not None else 0, "Precio de producto inválido")
            if price < 0:
                raise ValidationError("Precio de producto inválido")
            values[column] = price
    for key, column in _LIMIT_FIELDS.items():
        if key in payload:
            values[column] = parse_non_negative_int(payload[key], key)
    for key, (column, _model, message) in _FK_FIELDS.items():
        if key in payload:
            values[column] = parse_id(payload[key], message, required=False)
    if "disponible" in payload:
        values["disponible"] = bool(payload["disponible"])
    if "motivoNoDisponible" in payload:
        values["motivo_no_disponible"] = parse_text(payload["motivoNoDisponible"])

    fields = ProductFields(values=values)
    stock = first_key(payload, "stockActual")
    if stock is not UNSET:
        fields.stock_actual = parse_non_negative_int(stock, "stockActual")
    fields.observacion = parse_text(first_key(payload, "observacion"))
    return fields


async def _check_references(db: AsyncSession, values: dict[str, Any]) -> None:
    for column, model, message in _FK_FIELDS.values():
        ref = values.get(column)
        if ref is not None and await db.get(model, ref) is None:
            raise ValidationError(message)
    modelo_id = values.get("modelo_id")
    if modelo_id is not None:
        modelo = await db.get(Model, modelo_id)
        if values.get("marca_id") is not None and modelo.marca_id != values["marca_id"]:
            raise ValidationError("El modelo no pertenece a la marca indicada")


def _check_limits(product_like: Mapping[str, Any]) -> None:
    maximo = int(product_like.get("stock_maximo") or 0)
    minimo = int(product_like.get("stock_minimo") or 0)
    stock = int(product_like.get("stock_actual") or 0)
    if maximo and minimo > maximo:
        raise ValidationError("El stock mínimo no puede superar al máximo")
    if maximo and stock > maximo:
        raise ValidationError("El stock actual supera el stock máximo del producto")


async def get_product(db: AsyncSession, product_id: int) -> ProductView:
    product = await db.get(Product, product_id, populate_existing=True)
    if product is None:
        raise NotFoundError("Producto no encontrado")
    return product_view(product)


async def list_products(
    db: AsyncSession,
    *,
    search: Optional[str] = None,
    supplier_id: Optional[int] = None,
    available: Optional[bool] = None,
    limit: int = 200,
) -> list[ProductView]:
    stmt = select(Product)
    if search and search.strip():
        term = f"%{search.strip().lower()}%"
        stmt = stmt.where(
            or_(func.lower(Product.nombre).like(term), func.lower(Product.descripcion).like(term))
        )
    if supplier_id:
        stmt = stmt.where(Product.suplidor_id == supplier_id)
    if available is not None:
        stmt = stmt.where(Product.disponible.is_(available))
    stmt = stmt.order_by(Product.nombre, Product.id).limit(limit)
    return [product_view(p) for p in (await db.execute(stmt)).scalars().all()]


async def low_stock_alerts(db: AsyncSession) -> list[ProductView]:
    """Productos con ``stock_actual <= stock_minimo``, los más críticos primero."""
    stmt = (
        select(Product)
        .where(Product.stock_actual <= Product.stock_minimo)
        .order_by((Product.stock_actual - Product.stock_minimo), Product.nombre)
    )
    return [product_view(p) for p in (await db.execute(stmt)).scalars().all()]


async def create_product(db: AsyncSession, payload: Mapping[str, Any], *, usuario_id: Optional[int]) -> ProductView:
    fields = _parse_fields(payload, creating=True)
    initial = 0 if fields.stock_actual is UNSET else int(fields.stock_actual)
    values = {
        "precio_tienda": Decimal("0"),
        "precio_ruta": Decimal("0"),
        "stock_minimo": 0,
        "stock_maximo": 0,
        "disponible": True,
        **fields.values,
    }
    _check_limits({**values, "stock_actual": initial})
    async with unit_of_work(db):
        await _check_references(db, values)
        product = Product(stock_actual=0, **values)
        db.add(product)
        await db.flush()
        if initial > 0:
            apply_movement(
                db,
                product,
                tipo="entrada",
                delta=initial,
                motivo="stock_inicial",
                usuario_id=usuario_id,
                observacion=fields.observacion or "Stock inicial",
            )
        product_id = product.id
    inventory_event_log(LOGGER_NAME, "product_created", producto_id=product_id, stock_inicial=initial)
    return await get_product(db, product_id)


async def update_product(
    db: AsyncSession, product_id: int, payload: Mapping[str, Any], *, usuario_id: Optional[int]
) -> ProductView:
    """Edita campos de catálogo; ``stockActual`` se aplica como ajuste manual bajo lock."""
    fields = _parse_fields(payload, creating=False)
    if not fields.values and fields.stock_actual is UNSET:
        raise ValidationError("No hay campos para actualizar")
    adjusted: Optional[dict] = None
    async with unit_of_work(db):
        product = await lock_product(db, product_id)
        if product is None:
            raise NotFoundError("Producto no encontrado")
        merged = {
            "stock_minimo": product.stock_minimo,
            "stock_maximo": product.stock_maximo,
            "marca_id": product.marca_id,
            **fields.values,
        }
        target_stock = product.stock_actual if fields.stock_actual is UNSET else fields.stock_actual
        if fields.stock_actual is not UNSET:
            _check_limits({**merged, "stock_actual": target_stock})
        elif int(merged["stock_maximo"] or 0) and int(merged["stock_minimo"] or 0) > int(merged["stock_maximo"]):
            raise ValidationError("El stock mínimo no puede superar al máximo")
        await _check_references(db, merged)
        for column, value in fields.values.items():
            setattr(product, column, value)
        delta = int(target_stock) - int(product.stock_actual or 0)
        if delta:
            mov = apply_movement(
                db,
                product,
                tipo="ajuste",
                delta=delta,
                motivo="ajuste_manual",
                usuario_id=usuario_id,
                observacion=fields.observacion or "Ajuste manual de stock",
            )
            adjusted = {"delta": delta, "stock_anterior": mov.stock_anterior, "stock_nuevo": mov.stock_nuevo}
        await db.flush()
    if adjusted:
        inventory_event_log(LOGGER_NAME, "stock_adjusted", producto_id=product_id, usuario_id=usuario_id, **adjusted)
    return await get_product(db, product_id)


async def delete_product(db: AsyncSession, product_id: int) -> None:
    """Borra un producto sin historial.

    Con movimientos o ventas registradas se rechaza: el libro de stock no
    puede quedar con filas huérfanas. Los pedidos que lo apuntaban quedan sin
    producto y conservan su descripción.
    """
    async with unit_of_work(db):
        product = await lock_product(db, product_id)
        if product is None:
            raise NotFoundError("Producto no encontrado")
        for column in (StockMovement.producto_id, DetalleSalida.producto_id):
            used = select(column).where(column == product_id).limit(1)
            if (await db.execute(used)).first() is not None:
                raise ConflictError("El producto tiene movimientos registrados; márcalo como no disponible")
        await db.execute(update(Pedido).where(Pedido.producto_id == product_id).values(producto_id=None))
        await db.delete(product)
    inventory_event_log(LOGGER_NAME, "product_deleted", producto_id=product_id)


async def stock_history(
db: AsyncSession, product_id: int, *, page: int = 1, page_size: int = 20) -> dict[str, Any]:
    """Movimientos del producto, más recientes primero, paginados."""
    if await db.get(Product, product_id) is None:
        raise NotFoundError("Producto no encontrado")
    page = max(1, int(page))
    page_size = max(1, min(int(page_size), 200))
    total = (
        await db.execute(select(func.count(StockMovement.id)).where(StockMovement.producto_id == product_id))
    ).scalar_one()
    stmt = (
        select(StockMovement)
        .options(selectinload(StockMovement.producto), selectinload(StockMovement.usuario))
        .where(StockMovement.producto_id == product_id)
        .order_by(StockMovement.fecha_movimiento.desc(), StockMovement.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items: list[MovementView] = [movement_view(m) for m in (await db.execute(stmt)).scalars().all()]
    return {
        "items": [i.to_dict() for i in items],
        "total": int(total),
        "page": page,
        "pages": (int(total) + page_size - 1) // page_size if total else 0,
    }
