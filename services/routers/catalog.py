# NG-HEADER: Nombre de archivo: catalog.py
# NG-HEADER: Ubicación: services/routers/catalog.py
# NG-HEADER: Descripción: ABM simple de marcas, tipos, modelos, suplidores y estados.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Catálogos simples.

Sin lógica de negocio más allá de unicidad de nombres y claves foráneas:
un nombre repetido devuelve 409.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import (
    ORDER_PHASES,
    Brand,
    Model,
    Pedido,
    PedidoEstado,
    Product,
    ProductType,
    Salida,
    SalidaEstado,
    Supplier,
)
from db.session import get_session
from services.auth import require_admin, require_csrf, require_staff
from services.inventory.errors import ConflictError, NotFoundError, ValidationError
from services.inventory.estados import classify
from services.inventory.parsing import parse_id, parse_text
from services.inventory.uow import unit_of_work

router = APIRouter(tags=["catalog"])

_write = [Depends(require_admin()), Depends(require_csrf)]
_read = [Depends(require_staff())]


def _required_name(payload: dict, key: str = "nombre") -> str:
    nombre = parse_text(payload.get(key))
    if not nombre:
        raise ValidationError("El nombre es obligatorio")
    return nombre


async def _ensure_unique(db: AsyncSession, column, value: str, *, exclude_id: Optional[int] = None, label: str) -> None:
    stmt = select(column.class_).where(func.lower(column) == value.lower())
    existing = (await db.execute(stmt)).scalars().first()
    if existing is not None and existing.id != exclude_id:
        raise ConflictError(f"{label} ya existe")


# --- Marcas y tipos de producto ---


@router.get("/brands", dependencies=_read)
async def list_brands(db: AsyncSession = Depends(get_session)):
    rows = (await db.execute(select(Brand).order_by(Brand.nombre))).scalars().all()
    return [{"id": b.id, "nombre": b.nombre} for b in rows]


@router.post("/brands", status_code=201, dependencies=_write)
async def create_brand(payload: dict, db: AsyncSession = Depends(get_session)):
    nombre = _required_name(payload)
    async with unit_of_work(db):
        await _ensure_unique(db, Brand.nombre, nombre, label="La marca")
        brand = Brand(nombre=nombre)
        db.add(brand)
        await db.flush()
    return {"id": brand.id, "nombre": brand.nombre}


@router.get("/product-types", dependencies=_read)
async def list_product_types(db: AsyncSession = Depends(get_session)):
    rows = (await db.execute(select(ProductType).order_by(ProductType.nombre))).scalars().all()
    return [{"id": t.id, "nombre": t.nombre} for t in rows]


@router.post("/product-types", status_code=201, dependencies=_write)
async def create_product_type(payload: dict, db: AsyncSession = Depends(get_session)):
    nombre = _required_name(payload)
    async with unit_of_work(db):
        await _ensure_unique(db, ProductType.nombre, nombre, label="El tipo de producto")
        tipo = ProductType(nombre=nombre)
        db.add(tipo)
        await db.flush()
    return {"id": tipo.id, "nombre": tipo.nombre}


# --- Modelos ---


def _model_dict(m: Model) -> dict[str, Any]:
    return {"id": m.id, "nombre": m.nombre, "brandId": m.marca_id, "productTypeId": m.tipo_producto_id}


@router.get("/models", dependencies=_read)
async def list_models(
    brand_id: Optional[int] = None,
    product_type_id: Optional[int] = None,
    db: AsyncSession = Depends(get_session),
):
    stmt = select(Model).order_by(Model.nombre)
    if brand_id:
        stmt = stmt.where(Model.marca_id == brand_id)
    if product_type_id:
        stmt = stmt.where(Model.tipo_producto_id == product_type_id)
    return [_model_dict(m) for m in (await db.execute(stmt)).scalars().all()]


@router.post("/models", status_code=201, dependencies=_write)
async def create_model(payload: dict, db: AsyncSession = Depends(get_session)):
    nombre = _required_name(payload)
    marca_id = parse_id(payload.get("brandId"), "Marca no válida")
    tipo_id = parse_id(payload.get("productTypeId"), "Tipo de producto no válido")
    async with unit_of_work(db):
        if await db.get(Brand, marca_id) is None:
            raise ValidationError("Marca no válida")
        if await db.get(ProductType, tipo_id) is None:
            raise ValidationError("Tipo de producto no válido")
        dup = select(Model.id).where(Model.marca_id == marca_id, func.lower(Model.nombre) == nombre.lower())
        if (await db.execute(dup)).first() is not None:
            raise ConflictError("El modelo ya existe para esa marca")
        modelo = Model(nombre=nombre, marca_id=marca_id, tipo_producto_id=tipo_id)
        db.add(modelo)
        await db.flush()
    return _model_dict(modelo)


# --- Suplidores ---


def _supplier_dict(s: Supplier) -> dict[str, Any]:
    return {
        "id": s.id,
        "nombreEmpresa": s.nombre_empresa,
        "contacto": s.contacto,
        "telefono": s.telefono,
        "email": s.email,
        "direccion": s.direccion,
        "activo": s.activo,
    }


@router.get("/suppliers", dependencies=_read)
async def list_suppliers(db: AsyncSession = Depends(get_session)):
    rows = (await db.execute(select(Supplier).order_by(Supplier.nombre_empresa))).scalars().all()
    return [_supplier_dict(s) for s in rows]


@router.post("/suppliers", status_code=201, dependencies=_write)
async def create_supplier(payload: dict, db: AsyncSession = Depends(get_session)):
    nombre = _required_name(payload, "nombreEmpresa")
    async with unit_of_work(db):
        await _ensure_unique(db, Supplier.nombre_empresa, nombre, label="El suplidor")
        supplier = Supplier(
            nombre_empresa=nombre,
            contacto=parse_text(payload.get("contacto")),
            telefono=parse_text(payload.get("telefono")),
            email=parse_text(payload.get("email")),
            direccion=parse_text(payload.get("direccion")),
            activo=bool(payload.get("activo", True)),
        )
        db.add(supplier)
        await db.flush()
    return _supplier_dict(supplier)


_SUPPLIER_TEXT = ("contacto", "telefono", "email", "direccion")


@router.patch("/suppliers/{supplier_id}", dependencies=_write)
async def update_supplier(supplier_id: int, payload: dict, db: AsyncSession = Depends(get_session)):
    keys = set(payload) & {"nombreEmpresa", "activo", *_SUPPLIER_TEXT}
    if not keys:
        raise ValidationError("No hay campos para actualizar")
    async with unit_of_work(db):
        supplier = await db.get(Supplier, supplier_id)
        if supplier is None:
            raise NotFoundError("Suplidor no encontrado")
        if "nombreEmpresa" in payload:
            nombre = _required_name(payload, "nombreEmpresa")
            await _ensure_unique(db, Supplier.nombre_empresa, nombre, exclude_id=supplier.id, label="El suplidor")
            supplier.nombre_empresa = nombre
        for key in _SUPPLIER_TEXT:
            if key in payload:
                setattr(supplier, key, parse_text(payload[key]))
        if "activo" in payload:
            supplier.activo = bool(payload["activo"])
        await db.flush()
    return _supplier_dict(supplier)


@router.delete("/suppliers/{supplier_id}", status_code=204, dependencies=_write)
async def delete_supplier(supplier_id: int, db: AsyncSession = Depends(get_session)):
    """Borra el suplidor; con pedidos registrados se rechaza (desactivarlo en su lugar)."""
    async with unit_of_work(db):
        supplier = await db.get(Supplier, supplier_id)
        if supplier is None:
            raise NotFoundError("Suplidor no encontrado")
        used = select(Pedido.id).where(Pedido.suplidor_id == supplier.id).limit(1)
        if (await db.execute(used)).first() is not None:
            raise ConflictError("El suplidor tiene pedidos registrados; desactívalo en su lugar")
        await db.execute(update(Product).where(Product.suplidor_id == supplier.id).values(suplidor_id=None))
        await db.delete(supplier)
    return Response(status_code=204)


# --- Estados de pedidos ---


def _pedido_estado_dict(e: PedidoEstado) -> dict[str, Any]:
    return {
        "id": e.id,
        "nombre": e.nombre,
        "activo": e.activo,
        "posicion": e.posicion,
        "fase": e.fase,
        "faseEfectiva": classify(e.nombre, e.fase).value,
    }


def _parse_fase(value: Any) -> Optional[str]:
    fase = parse_text(value)
    if fase is None:
        return None
    fase = fase.lower()
    if fase not in ORDER_PHASES:
        raise ValidationError("Fase no válida")
    return fase


@router.get("/pedido-estados", dependencies=_read)
async def list_pedido_estados(db: AsyncSession = Depends(get_session)):
    stmt = select(PedidoEstado).order_by(PedidoEstado.posicion, PedidoEstado.nombre)
    return [_pedido_estado_dict(e) for e in (await db.execute(stmt)).scalars().all()]


@router.post("/pedido-estados", status_code=201, dependencies=_write)
async def create_pedido_estado(payload: dict, db: AsyncSession = Depends(get_session)):
    nombre = _required_name(payload)
    async with unit_of_work(db):
        await _ensure_unique(db, PedidoEstado.nombre, nombre, label="El estado")
        estado = PedidoEstado(
            nombre=nombre,
            activo=bool(payload.get("activo", True)),
            posicion=int(payload.get("posicion") or 0),
            fase=_parse_fase(payload.get("fase")),
        )
        db.add(estado)
        await db.flush()
    return _pedido_estado_dict(estado)


@router.patch("/pedido-estados/{estado_id}", dependencies=_write)
async def update_pedido_estado(estado_id: int, payload: dict, db: AsyncSession = Depends(get_session)):
    async with unit_of_work(db):
        estado = await db.get(PedidoEstado, estado_id)
        if estado is None:
            raise NotFoundError("Estado no encontrado")
        if "nombre" in payload:
            nombre = _required_name(payload)
            await _ensure_unique(db, PedidoEstado.nombre, nombre, exclude_id=estado.id, label="El estado")
            estado.nombre = nombre
        if "activo" in payload:
            estado.activo = bool(payload["activo"])
        if "posicion" in payload:
            estado.posicion = int(payload["posicion"] or 0)
        if "fase" in payload:
            estado.fase = _parse_fase(payload["fase"])
        await db.flush()
    return _pedido_estado_dict(estado)


# --- Estados de salidas ---


def _salida_estado_dict(e: SalidaEstado) -> dict[str, Any]:
    return {"id": e.id, "nombre": e.nombre, "descripcion": e.descripcion, "activo": e.activo}


@router.get("/salida-estados", dependencies=_read)
async def list_salida_estados(db: AsyncSession = Depends(get_session)):
    rows = (await db.execute(select(SalidaEstado).order_by(SalidaEstado.nombre))).scalars().all()
    return [_salida_estado_dict(e) for e in rows]


@router.post("/salida-estados", status_code=201, dependencies=_write)
async def create_salida_estado(payload: dict, db: AsyncSession = Depends(get_session)):
    nombre = _required_name(payload)
    async with unit_of_work(db):
        await _ensure_unique(db, SalidaEstado.nombre, nombre, label="El estado")
        estado = SalidaEstado(
            nombre=nombre,
            descripcion=parse_text(payload.get("descripcion")),
            activo=bool(payload.get("activo", True)),
        )
        db.add(estado)
        await db.flush()
    return _salida_estado_dict(estado)


@router.patch("/salida-estados/{estado_id}", dependencies=_write)
async def update_salida_estado(estado_id: int, payload: dict, db: AsyncSession = Depends(get_session)):
    async with unit_of_work(db):
        estado = await db.get(SalidaEstado, estado_id)
        if estado is None:
            raise NotFoundError("Estado no encontrado")
        if "nombre" in payload:
            nombre = _required_name(payload)
            await _ensure_unique(db, SalidaEstado.nombre, nombre, exclude_id=estado.id, label="El estado")
            estado.nombre = nombre
        if "descripcion" in payload:
            estado.descripcion = parse_text(payload["descripcion"])
        if "activo" in payload:
            estado.activo = bool(payload["activo"])
        await db.flush()
    return _salida_estado_dict(estado)


@router.delete("/salida-estados/{estado_id}", status_code=204, dependencies=_write)
async def delete_salida_estado(estado_id: int, db: AsyncSession = Depends(get_session)):
    async with unit_of_work(db):
        estado = await db.get(SalidaEstado, estado_id)
        if estado is None:
            raise NotFoundError("Estado no encontrado")
        used = select(Salida.id).where(Salida.estado == estado.nombre).limit(1)
        if (await db.execute(used)).first() is not None:
            raise ValidationError("No puedes eliminar un estado que ya se ha utilizado en una salida")
        await db.delete(estado)
    return Response(status_code=204)
