#!/usr/bin/env python
# NG-HEADER: Nombre de archivo: conftest.py
# NG-HEADER: Ubicación: tests/conftest.py
# NG-HEADER: Descripción: Fixtures y configuración compartida de Pytest.
# NG-HEADER: Lineamientos: Ver AGENTS.md
import os
import sys
from decimal import Decimal
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio

# Asegurar path del proyecto antes de importar módulos internos
project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.append(str(project_root))

# -------- Entorno base de tests --------
# DB en memoria compartida y sin SMTP: las notificaciones se omiten
os.environ["DB_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENV"] = "dev"
os.environ["DEV_ASSUME_ADMIN"] = "false"
os.environ["TRUST_ROLE_HEADERS"] = "false"
for _var in ("SMTP_HOST", "SMTP_USER", "SMTP_PASS"):
    os.environ.pop(_var, None)

import db.session as _session  # noqa: E402
import db.base as _base  # noqa: E402
import db.models  # noqa: F401,E402
from db.models import (  # noqa: E402
    Brand,
    Model,
    PedidoEstado,
    Product,
    ProductType,
    Role,
    SalidaEstado,
    Supplier,
    User,
)

Base = _base.Base


@pytest_asyncio.fixture(scope="function", autouse=True)
async def db_session():
    """DB limpia por test (SQLite memoria compartida). Retorna sesión para usar en fixtures/tests."""
    engine = _session.engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with _session.SessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


# -------- Overrides de auth/CSRF y utilidades comunes --------
from httpx import ASGITransport, AsyncClient  # noqa: E402

from inventario_core.config import settings  # noqa: E402
from services.api import app  # noqa: E402
from services.auth import SessionData, current_session, require_csrf  # noqa: E402


def _as_role(role: str):
    return lambda: SessionData(None, None, role)


@pytest.fixture(autouse=True)
def _force_admin_and_disable_csrf(request):
    """Reafirma overrides por test para evitar contaminación entre módulos.

    Con el marker ``no_auth_override`` se usa el resolvedor real de sesión.
    """
    if "no_auth_override" in request.keywords:
        app.dependency_overrides.pop(current_session, None)
    else:
        app.dependency_overrides[current_session] = _as_role(settings.admin_role)
    app.dependency_overrides[require_csrf] = lambda: None
    yield
    app.dependency_overrides[current_session] = _as_role(settings.admin_role)
    app.dependency_overrides[require_csrf] = lambda: None


@pytest.fixture(autouse=True)
def _clear_login_attempts():
    from services import auth as _auth

    _auth._login_attempts.clear()
    yield


# -------- Clientes HTTP asíncronos para tests --------
@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP async con contexto administrador."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def client_seller() -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP async con rol vendedor."""
    app.dependency_overrides[current_session] = _as_role(settings.seller_role)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides[current_session] = _as_role(settings.admin_role)


@pytest_asyncio.fixture
async def db() -> AsyncGenerator:
    """Sesión fresca, independiente de la usada para sembrar datos."""
    async with _session.SessionLocal() as session:
        yield session


# -------- Datos de catálogo --------
@pytest_asyncio.fixture
async def catalog(db_session):
    """Suplidor, tipo, marca, modelo y estados de pedido/salida ya confirmados."""
    supplier = Supplier(nombre_empresa="Distribuidora Norte", activo=True)
    tipo = ProductType(nombre="Celulares")
    marca = Brand(nombre="Samsung")
    db_session.add_all([supplier, tipo, marca])
    await db_session.flush()
    modelo = Model(nombre="A15", marca_id=marca.id, tipo_producto_id=tipo.id)
    db_session.add(modelo)
    db_session.add_all(
        [
            PedidoEstado(nombre="Pendiente", activo=True, posicion=0),
            PedidoEstado(nombre="Recibido", activo=True, posicion=1),
            PedidoEstado(nombre="Cancelado", activo=True, posicion=2),
            SalidaEstado(nombre="Pendiente de entrega", activo=True),
            SalidaEstado(nombre="Entregado", activo=True),
        ]
    )
    await db_session.commit()
    return {"supplier": supplier, "tipo": tipo, "marca": marca, "modelo": modelo}


@pytest.fixture
def make_product(db_session, catalog):
    """Factory de productos confirmados en la DB."""

    async def _make(
        *,
        nombre: str = "Samsung A15",
        stock: int = 0,
        minimo: int = 0,
        maximo: int = 0,
        precio_tienda: str = "100.00",
        precio_ruta: str = "90.00",
        with_descriptors: bool = True,
    ) -> Product:
        product = Product(
            nombre=nombre,
            precio_tienda=Decimal(precio_tienda),
            precio_ruta=Decimal(precio_ruta),
            stock_actual=stock,
            stock_minimo=minimo,
            stock_maximo=maximo,
            disponible=True,
            suplidor_id=catalog["supplier"].id,
            tipo_producto_id=catalog["tipo"].id if with_descriptors else None,
            marca_id=catalog["marca"].id if with_descriptors else None,
            modelo_id=catalog["modelo"].id if with_descriptors else None,
        )
        db_session.add(product)
        await db_session.commit()
        return product

    return _make


@pytest_asyncio.fixture
async def admin_user(db_session):
    """Rol Administrador con un usuario activo (contraseña ``secreta123``)."""
    from services.auth import hash_pw

    role = Role(nombre=settings.admin_role)
    seller = Role(nombre=settings.seller_role)
    db_session.add_all([role, seller])
    await db_session.flush()
    user = User(
        nombre="Ana",
        apellido="Pérez",
        email="ana@example.com",
        password_hash=hash_pw("secreta123"),
        role_id=role.id,
        activo=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user
