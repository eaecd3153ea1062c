# NG-HEADER: Nombre de archivo: models.py
# NG-HEADER: Ubicación: db/models.py
# NG-HEADER: Descripción: Modelos ORM del inventario (catálogo, pedidos, salidas y movimientos).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Modelos principales de la base de datos."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


# Tipos de movimiento y motivos admitidos en el libro de stock
MOVEMENT_TYPES = ("entrada", "salida", "ajuste")
MOVEMENT_REASONS = (
    "pedido_recibido",
    "pedido_revertido",
    "salida",
    "ajuste_manual",
    "stock_inicial",
)
SALE_CHANNELS = ("tienda", "ruta")
PAYMENT_TYPES = ("contado", "credito")
ORDER_PHASES = ("pendiente", "recibido", "cancelado", "otro")


def _in(values: tuple[str, ...]) -> str:
    return ", ".join(f"'{v}'" for v in values)


# --- Usuarios y sesiones ---


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(String(50), unique=True)

    users: Mapped[list["User"]] = relationship(back_populates="role")


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(String(100))
    apellido: Mapped[Optional[str]] = mapped_column(String(100))
    email: Mapped[str] = mapped_column(String(200), unique=True)
    password_hash: Mapped[str] = mapped_column(String(200))
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id"))
    activo: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    role: Mapped["Role"] = relationship(back_populates="users", lazy="joined")

    @property
    def role_name(self) -> str:
        return self.role.nombre if self.role else ""

    @property
    def nombre_completo(self) -> str:
        return " ".join(p for p in (self.nombre, self.apellido) if p).strip()


class Session(Base):
    """Sesiones persistidas para autenticación mediante cookies."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    csrf_token: Mapped[str] = mapped_column(String(100), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    ip: Mapped[Optional[str]] = mapped_column(String(100))
    user_agent: Mapped[Optional[str]] = mapped_column(String(200))


# --- Catálogo ---


class Supplier(Base):
    __tablename__ = "suplidores"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre_empresa: Mapped[str] = mapped_column(String(200), unique=True)
    contacto: Mapped[Optional[str]] = mapped_column(String(200))
    telefono: Mapped[Optional[str]] = mapped_column(String(50))
    email: Mapped[Optional[str]] = mapped_column(String(200))
    direccion: Mapped[Optional[str]] = mapped_column(Text)
    activo: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)


class ProductType(Base):
    __tablename__ = "tipos_producto"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(String(100), unique=True)


class Brand(Base):
    __tablename__ = "marcas"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(String(100), unique=True)

    modelos: Mapped[list["Model"]] = relationship(back_populates="marca")


class Model(Base):
    __tablename__ = "modelos"
    __table_args__ = (UniqueConstraint("marca_id", "nombre", name="uq_modelos_marca_nombre"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(String(100))
    marca_id: Mapped[int] = mapped_column(ForeignKey("marcas.id"))
    tipo_producto_id: Mapped[int] = mapped_column(ForeignKey("tipos_producto.id"))

    marca: Mapped["Brand"] = relationship(back_populates="modelos")
    tipo_producto: Mapped["ProductType"] = relationship()


class Product(Base):
    __tablename__ = "productos"
    __table_args__ = (
        CheckConstraint("stock_actual >= 0", name="stock_actual_no_negativo"),
        CheckConstraint("stock_minimo >= 0", name="stock_minimo_no_negativo"),
        CheckConstraint("stock_maximo >= 0", name="stock_maximo_no_negativo"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(String(200))
    descripcion: Mapped[Optional[str]] = mapped_column(Text)
    tipo_producto_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tipos_producto.id"))
    marca_id: Mapped[Optional[int]] = mapped_column(ForeignKey("marcas.id"))
    modelo_id: Mapped[Optional[int]] = mapped_column(ForeignKey("modelos.id"))
    suplidor_id: Mapped[Optional[int]] = mapped_column(ForeignKey("suplidores.id", ondelete="SET NULL"))
    precio_tienda: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    precio_ruta: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    stock_actual: Mapped[int] = mapped_column(Integer, default=0)
    stock_minimo: Mapped[int] = mapped_column(Integer, default=0)
    # 0 = sin límite
    stock_maximo: Mapped[int] = mapped_column(Integer, default=0)
    disponible: Mapped[bool] = mapped_column(Boolean, default=True)
    motivo_no_disponible: Mapped[Optional[str]] = mapped_column(String(200))
    ultima_fecha_movimiento: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    tipo_producto: Mapped[Optional["ProductType"]] = relationship()
    marca: Mapped[Optional["Brand"]] = relationship()
    modelo: Mapped[Optional["Model"]] = relationship()
    suplidor: Mapped[Optional["Supplier"]] = relationship()


# --- Pedidos a suplidores ---


class PedidoEstado(Base):
    """Estados configurables por el administrador.

    ``fase`` es opcional: cuando está vacía la fase se deduce del nombre.
    """

    __tablename__ = "pedido_estados"
    __table_args__ = (
        CheckConstraint(f"fase IS NULL OR fase IN ({_in(ORDER_PHASES)})", name="fase_valida"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(String(100), unique=True)
    activo: Mapped[bool] = mapped_column(Boolean, default=True)
    posicion: Mapped[int] = mapped_column(Integer, default=0)
    fase: Mapped[Optional[str]] = mapped_column(String(20))


class Pedido(Base):
    __tablename__ = "pedidos_suplidores"
    __table_args__ = (
        CheckConstraint("cantidad_solicitada > 0", name="cantidad_positiva"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    producto_id: Mapped[Optional[int]] = mapped_column(ForeignKey("productos.id", ondelete="SET NULL"))
    suplidor_id: Mapped[int] = mapped_column(ForeignKey("suplidores.id"))
    tipo_producto_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tipos_producto.id"))
    marca_id: Mapped[Optional[int]] = mapped_column(ForeignKey("marcas.id"))
    modelo_id: Mapped[Optional[int]] = mapped_column(ForeignKey("modelos.id"))
    nombre_producto: Mapped[Optional[str]] = mapped_column(String(200))
    cantidad_solicitada: Mapped[int] = mapped_column(Integer)
    costo_unitario: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    fecha_pedido: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    fecha_esperada: Mapped[Optional[date]] = mapped_column(Date)
    fecha_recibido: Mapped[Optional[date]] = mapped_column(Date)
    estado: Mapped[str] = mapped_column(String(100))
    usuario_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))

    producto: Mapped[Optional["Product"]] = relationship()
    suplidor: Mapped["Supplier"] = relationship()
    tipo_producto: Mapped[Optional["ProductType"]] = relationship()
    marca: Mapped[Optional["Brand"]] = relationship()
    modelo: Mapped[Optional["Model"]] = relationship()


# --- Salidas (ventas) ---


class SalidaEstado(Base):
    __tablename__ = "salida_estados"

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(String(100), unique=True)
    descripcion: Mapped[Optional[str]] = mapped_column(Text)
    activo: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)


class Salida(Base):
    __tablename__ = "salidas_alm"
    __table_args__ = (
        CheckConstraint(f"tipo_salida IN ({_in(SALE_CHANNELS)})", name="tipo_salida_valido"),
        CheckConstraint(f"tipo_venta IN ({_in(PAYMENT_TYPES)})", name="tipo_venta_valido"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    ticket: Mapped[str] = mapped_column(String(40), unique=True)
    vendedor_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    fecha_salida: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    fecha_entrega: Mapped[Optional[date]] = mapped_column(Date)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    estado: Mapped[str] = mapped_column(String(100))
    tipo_salida: Mapped[str] = mapped_column(String(10), default="tienda")
    tipo_venta: Mapped[str] = mapped_column(String(10), default="contado")

    vendedor: Mapped[Optional["User"]] = relationship()
    detalles: Mapped[list["DetalleSalida"]] = relationship(
        back_populates="salida", order_by="DetalleSalida.id"
    )


class DetalleSalida(Base):
    __tablename__ = "detalle_salidas"
    __table_args__ = (CheckConstraint("cantidad > 0", name="cantidad_positiva"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    salida_id: Mapped[int] = mapped_column(ForeignKey("salidas_alm.id", ondelete="CASCADE"))
    producto_id: Mapped[int] = mapped_column(ForeignKey("productos.id"))
    cantidad: Mapped[int] = mapped_column(Integer)
    precio_unitario: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    salida: Mapped["Salida"] = relationship(back_populates="detalles")
    producto: Mapped["Product"] = relationship()


# --- Libro de movimientos de stock ---


class StockMovement(Base):
    """Registro inmutable de cada cambio de ``stock_actual``.

    ``pedido_id``/``salida_id`` + ``motivo`` identifican el evento de negocio
    que originó el movimiento; ``observacion`` es sólo texto para humanos.
    """

    __tablename__ = "movimientos_inv"
    __table_args__ = (
        CheckConstraint(f"tipo IN ({_in(MOVEMENT_TYPES)})", name="tipo_valido"),
        CheckConstraint(f"motivo IN ({_in(MOVEMENT_REASONS)})", name="motivo_valido"),
        CheckConstraint("cantidad > 0", name="cantidad_positiva"),
        CheckConstraint("stock_nuevo >= 0", name="stock_nuevo_no_negativo"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    producto_id: Mapped[int] = mapped_column(ForeignKey("productos.id"), index=True)
    tipo: Mapped[str] = mapped_column(String(10))
    motivo: Mapped[str] = mapped_column(String(30))
    cantidad: Mapped[int] = mapped_column(Integer)
    stock_anterior: Mapped[int] = mapped_column(Integer)
    stock_nuevo: Mapped[int] = mapped_column(Integer)
    usuario_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    observacion: Mapped[Optional[str]] = mapped_column(Text)
    pedido_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("pedidos_suplidores.id", ondelete="SET NULL"), index=True
    )
    salida_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("salidas_alm.id", ondelete="SET NULL"), index=True
    )
    detalle_salida_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("detalle_salidas.id", ondelete="SET NULL")
    )
    fecha_movimiento: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    producto: Mapped["Product"] = relationship()
    usuario: Mapped[Optional["User"]] = relationship()
