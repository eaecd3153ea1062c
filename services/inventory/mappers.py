# NG-HEADER: Nombre de archivo: mappers.py
# NG-HEADER: Ubicación: services/inventory/mappers.py
# NG-HEADER: Descripción: Vistas tipadas de entidades y su serialización JSON (camelCase).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Mapeo fila ORM -> vista tipada -> dict JSON.

Los routers nunca devuelven objetos ORM: construyen una vista con
``*_view`` y la serializan con ``to_dict``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from db.models import DetalleSalida, Pedido, Product, Salida, StockMovement

PRODUCTO_PENDIENTE = "Producto pendiente"


def money(value: Any) -> float:
    """Decimal -> float redondeado a 2 decimales para JSON."""
    if value is None:
        return 0.0
    return float(Decimal(str(value)).quantize(Decimal("0.01")))


def _iso(value: Optional[date | datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p[:1].upper() + p[1:] for p in rest)


class _View:
    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key, value in self.__dict__.items():
            if isinstance(value, (date, datetime)):
                value = value.isoformat()
            elif isinstance(value, list):
                value = [v.to_dict() if isinstance(v, _View) else v for v in value]
            elif isinstance(value, _View):
                value = value.to_dict()
            out[_camel(key)] = value
        return out


@dataclass
class ProductView(_View):
    id: int
    nombre: str
    descripcion: Optional[str]
    precio_tienda: float
    precio_ruta: float
    stock_actual: int
    stock_minimo: int
    stock_maximo: int
    disponible: bool
    motivo_no_disponible: Optional[str]
    supplier_id: Optional[int]
    product_type_id: Optional[int]
    brand_id: Optional[int]
    model_id: Optional[int]
    ultima_fecha_movimiento: Optional[datetime]
    bajo_minimo: bool


def product_view(p: Product) -> ProductView:
    stock = int(p.stock_actual or 0)
    minimo = int(p.stock_minimo or 0)
    return ProductView(
        id=p.id,
        nombre=p.nombre,
        descripcion=p.descripcion,
        precio_tienda=money(p.precio_tienda),
        precio_ruta=money(p.precio_ruta),
        stock_actual=stock,
        stock_minimo=minimo,
        stock_maximo=int(p.stock_maximo or 0),
        disponible=bool(p.disponible),
        motivo_no_disponible=p.motivo_no_disponible,
        supplier_id=p.suplidor_id,
        product_type_id=p.tipo_producto_id,
        brand_id=p.marca_id,
        model_id=p.modelo_id,
        ultima_fecha_movimiento=p.ultima_fecha_movimiento,
        bajo_minimo=stock <= minimo,
    )


@dataclass
class PedidoView(_View):
    id: int
    producto_id: Optional[int]
    producto_nombre: str
    supplier_id: int
    supplier_nombre: Optional[str]
    product_type_id: Optional[int]
    brand_id: Optional[int]
    model_id: Optional[int]
    cantidad_solicitada: int
    cost_price: Optional[float]
    fecha_pedido: Optional[datetime]
    fecha_esperada: Optional[date]
    fecha_recibido: Optional[date]
    estado: str
    usuario_id: Optional[int]


def resolve_producto_nombre(pedido: Pedido) -> str:
    """Nombre visible del pedido aunque todavía no tenga producto vinculado."""
    if pedido.producto is not None and pedido.producto.nombre:
        return pedido.producto.nombre
    if pedido.nombre_producto and pedido.nombre_producto.strip():
        return pedido.nombre_producto.strip()
    marca = pedido.marca.nombre if pedido.marca is not None else None
    modelo = pedido.modelo.nombre if pedido.modelo is not None else None
    partes = [x for x in (marca, modelo) if x]
    if partes:
        return " • ".join(partes)
    if pedido.tipo_producto is not None:
        return f"{pedido.tipo_producto.nombre} pendiente"
    return PRODUCTO_PENDIENTE


def pedido_view(pedido: Pedido) -> PedidoView:
    """Requiere ``producto``, ``suplidor``, ``marca``, ``modelo`` y ``tipo_producto`` cargados."""
    return PedidoView(
        id=pedido.id,
        producto_id=pedido.producto_id,
        producto_nombre=resolve_producto_nombre(pedido),
        supplier_id=pedido.suplidor_id,
        supplier_nombre=pedido.suplidor.nombre_empresa if pedido.suplidor is not None else None,
        product_type_id=pedido.tipo_producto_id,
        brand_id=pedido.marca_id,
        model_id=pedido.modelo_id,
        cantidad_solicitada=int(pedido.cantidad_solicitada),
        cost_price=money(pedido.costo_unitario) if pedido.costo_unitario is not None else None,
        fecha_pedido=pedido.fecha_pedido,
        fecha_esperada=pedido.fecha_esperada,
        fecha_recibido=pedido.fecha_recibido,
        estado=pedido.estado,
        usuario_id=pedido.usuario_id,
    )


@dataclass
class DetalleView(_View):
    id: int
    producto_id: int
    producto_nombre: Optional[str]
    cantidad: int
    precio_unitario: float
    subtotal: float
    stock_anterior: Optional[int] = None
    stock_nuevo: Optional[int] = None


def detalle_view(d: DetalleSalida, mov: Optional[StockMovement] = None) -> DetalleView:
    return DetalleView(
        id=d.id,
        producto_id=d.producto_id,
        producto_nombre=d.producto.nombre if d.producto is not None else None,
        cantidad=int(d.cantidad),
        precio_unitario=money(d.precio_unitario),
        subtotal=money(d.subtotal),
        stock_anterior=mov.stock_anterior if mov is not None else None,
        stock_nuevo=mov.stock_nuevo if mov is not None else None,
    )


@dataclass
class SalidaView(_View):
    id: int
    ticket: str
    vendedor_id: Optional[int]
    vendedor_nombre: Optional[str]
    fecha_salida: Optional[datetime]
    fecha_entrega: Optional[date]
    total: float
    estado: str
    tipo_salida: str
    tipo_venta: str
    detalles: list[DetalleView] = field(default_factory=list)


def salida_view(
    s: Salida,
    *,
    detalles: Optional[list[DetalleView]] = None,
) -> SalidaView:
    """Con ``detalles=None`` se usan los de ``s.detalles`` (deben estar cargados)."""
    if detalles is None:
        detalles = [detalle_view(d) for d in s.detalles]
    return SalidaView(
        id=s.id,
        ticket=s.ticket,
        vendedor_id=s.vendedor_id,
        vendedor_nombre=s.vendedor.nombre_completo if s.vendedor is not None else None,
        fecha_salida=s.fecha_salida,
        fecha_entrega=s.fecha_entrega,
        total=money(s.total),
        estado=s.estado,
        tipo_salida=s.tipo_salida,
        tipo_venta=s.tipo_venta,
        detalles=detalles,
    )


@dataclass
class MovementView(_View):
    id: int
    producto_id: int
    producto_nombre: Optional[str]
    tipo: str
    motivo: str
    cantidad: int
    stock_anterior: int
    stock_nuevo: int
    usuario_id: Optional[int]
    usuario_nombre: Optional[str]
    observacion: Optional[str]
    pedido_id: Optional[int]
    salida_id: Optional[int]
    detalle_salida_id: Optional[int]
    fecha_movimiento: Optional[datetime]


def movement_view(m: StockMovement) -> MovementView:
    """Requiere ``producto`` y ``usuario`` cargados."""
    return MovementView(
        id=m.id,
        producto_id=m.producto_id,
        producto_nombre=m.producto.nombre if m.producto is not None else None,
        tipo=m.tipo,
        motivo=m.motivo,
        cantidad=int(m.cantidad),
        stock_anterior=int(m.stock_anterior),
        stock_nuevo=int(m.stock_nuevo),
        usuario_id=m.usuario_id,
        usuario_nombre=m.usuario.nombre_completo if m.usuario is not None else None,
        observacion=m.observacion,
        pedido_id=m.pedido_id,
        salida_id=m.salida_id,
        detalle_salida_id=m.detalle_salida_id,
        fecha_movimiento=m.fecha_movimiento,
    )
