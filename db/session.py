# NG-HEADER: Nombre de archivo: session.py
# NG-HEADER: Ubicación: db/session.py
# NG-HEADER: Descripción: Creación del engine y sesiones asíncronas de SQLAlchemy.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Sesión asíncrona para SQLAlchemy."""
import logging
import os
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from inventario_core.config import settings

logger = logging.getLogger("inventario.db")

# ``DEBUG_SQL=1`` activa el modo ``echo`` para ver las consultas generadas.
ECHO = os.getenv("DEBUG_SQL", "0") == "1"

# Priorizar variable de entorno DB_URL si está definida (p. ej., tests la setean a :memory:)
db_url = os.getenv("DB_URL") or settings.db_url
kwargs: dict = {"echo": ECHO, "pool_pre_ping": True}
if db_url.startswith("sqlite+") and ":memory:" in db_url:
    # DB en memoria compartida y con nombre para múltiples conexiones
    # Referencia: https://www.sqlite.org/inmemorydb.html (URI mode)
    db_url = "sqlite+aiosqlite:///file:inventariodb?mode=memory&cache=shared"
    kwargs.update({"connect_args": {"uri": True}, "poolclass": StaticPool})

engine = create_async_engine(db_url, **kwargs)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

_schema_initialized = False


def is_sqlite() -> bool:
    return engine.dialect.name == "sqlite"


async def ensure_schema_if_sqlite() -> None:
    """Crea el esquema desde metadata cuando el backend es SQLite (dev/tests).

    En Postgres el esquema lo gestiona Alembic (``db/migrations``).
    """
    global _schema_initialized
    if _schema_initialized:
        return
    if is_sqlite():
        import db.models  # noqa: F401
        from db.base import Base

        async with engine.begin() as conn:
            # Crear tablas faltantes sin borrar datos ya cargados
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Esquema SQLite verificado (%s)", engine.url.database)
    _schema_initialized = True


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependencia FastAPI: una ``AsyncSession`` por request.

    El ``async with`` garantiza que la conexión vuelva al pool en todos los
    caminos de salida (éxito, excepción o cancelación).
    """
    await ensure_schema_if_sqlite()
    async with SessionLocal() as session:
        yield session


# Alias usado por algunos routers
get_db = get_session
