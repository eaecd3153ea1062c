# NG-HEADER: Nombre de archivo: estados.py
# NG-HEADER: Ubicación: services/inventory/estados.py
# NG-HEADER: Descripción: Clasificación de estados configurables de pedidos y salidas.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Estados configurables por el administrador.

Los nombres son libres; la fase semántica (pendiente, recibido, cancelado u
otro) sale de la columna ``fase`` cuando está cargada y, si no, del prefijo
del nombre normalizado. Se usa prefijo y no "contiene" para que un estado
como "No recibido todavía" no cuente como recibido.
"""
from __future__ import annotations

import enum
import unicodedata
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import PedidoEstado, SalidaEstado

DEFAULT_SALIDA_ESTADO = "Pendiente de entrega"


class Fase(str, enum.Enum):
    PENDIENTE = "pendiente"
    RECIBIDO = "recibido"
    CANCELADO = "cancelado"
    OTRO = "otro"


_PREFIXES: tuple[tuple[str, Fase], ...] = (
    ("recib", Fase.RECIBIDO),
    ("cancel", Fase.CANCELADO),
    ("anulad", Fase.CANCELADO),
    ("pendient", Fase.PENDIENTE),
)


def normalize(nombre: Optional[str]) -> str:
    """Minúsculas, sin acentos y sin espacios extremos."""
    if not nombre:
        return ""
    decomposed = unicodedata.normalize("NFKD", nombre)
    plain = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(plain.lower().split())


def classify(nombre: Optional[str], fase: Optional[str] = None) -> Fase:
    if fase:
        try:
            return Fase(fase.strip().lower())
        except ValueError:
            pass
    norm = normalize(nombre)
    for prefix, result in _PREFIXES:
        if norm.startswith(prefix):
            return result
    return Fase.OTRO


class EstadoCatalog:
    """Estados de pedido resueltos una vez por operación.

    ``estados`` y la pertenencia sólo consideran los activos; la
    clasificación usa también los inactivos para que un pedido guardado en
    un estado desactivado conserve su fase.
    """

    def __init__(self, estados: Sequence[PedidoEstado]) -> None:
        self._by_name = {e.nombre: e for e in estados}
        self.estados = [e for e in estados if e.activo is not False]
        self._active = {e.nombre for e in self.estados}

    def __contains__(self, nombre: object) -> bool:
        return nombre in self._active

    @property
    def default(self) -> Optional[PedidoEstado]:
        return self.estados[0] if self.estados else None

    def fase_of(self, nombre: Optional[str]) -> Fase:
        # Estados borrados se clasifican sólo por nombre
        estado = self._by_name.get(nombre or "")
        return classify(nombre, estado.fase if estado else None)

    def is_received(self, nombre: Optional[str]) -> bool:
        return self.fase_of(nombre) is Fase.RECIBIDO


async def load_pedido_estados(db: AsyncSession) -> EstadoCatalog:
    """Todos los estados ordenados por posición y nombre; el primer activo es el default."""
    stmt = select(PedidoEstado).order_by(PedidoEstado.posicion, PedidoEstado.nombre)
    return EstadoCatalog((await db.execute(stmt)).scalars().all())


async def active_salida_estados(db: AsyncSession) -> list[str]:
    stmt = (
        select(SalidaEstado.nombre)
        .where(SalidaEstado.activo.is_(True))
        .order_by(SalidaEstado.nombre)
    )
    return list((await db.execute(stmt)).scalars().all())


def pick_default_salida_estado(activos: Sequence[str]) -> str:
    """Usa ``DEFAULT_SALIDA_ESTADO`` si está activo; si no, el primero por nombre."""
    if not activos or DEFAULT_SALIDA_ESTADO in activos:
        return DEFAULT_SALIDA_ESTADO
    return activos[0]
