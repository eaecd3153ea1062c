# NG-HEADER: Nombre de archivo: uow.py
# NG-HEADER: Ubicación: services/inventory/uow.py
# NG-HEADER: Descripción: Unidad de trabajo transaccional (commit o rollback garantizado).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Unidad de trabajo sobre una ``AsyncSession``."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger("inventario.uow")


async def _begin_isolated(db: AsyncSession, isolation: str) -> None:
    # El nivel de aislamiento sólo puede fijarse antes de la primera sentencia
    if db.in_transaction():
        if db.new or db.dirty or db.deleted:
            logger.warning("unit_of_work: transacción con cambios pendientes, se omite isolation=%s", isolation)
            return
        await db.commit()
    await db.connection(execution_options={"isolation_level": isolation})


@asynccontextmanager
async def unit_of_work(db: AsyncSession, *, isolation: Optional[str] = None) -> AsyncIterator[AsyncSession]:
    """Ejecuta el bloque dentro de una transacción.

    - Éxito: ``commit``.
    - Cualquier excepción (incluida ``CancelledError``): ``rollback`` y se relanza.
    - ``isolation`` sólo se aplica en Postgres; SQLite serializa escrituras por sí mismo.
      Una transacción de sólo lectura ya abierta se cierra antes de fijarlo.
    """
    if isolation and db.bind is not None and db.bind.dialect.name == "postgresql":
        await _begin_isolated(db, isolation)
    try:
        yield db
    except BaseException:
        await db.rollback()
        logger.debug("unit_of_work rollback", exc_info=True)
        raise
    else:
        await db.commit()
