# NG-HEADER: Nombre de archivo: test_users_api.py
# NG-HEADER: Ubicación: tests/test_users_api.py
# NG-HEADER: Descripción: Administración de usuarios, roles y revocación de sesiones
# NG-HEADER: Lineamientos: Ver AGENTS.md
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from db.models import Session as DBSess, User
from inventario_core.config import settings
from services.auth import verify_pw


async def _create_seller(client, email="Luis@Example.com"):
    r = await client.post(
        "/users",
        json={"nombre": "Luis", "apellido": "Gómez", "email": email, "password": "clave-segura", "roleName": settings.seller_role},
    )
    assert r.status_code == 201, r.text
    return r.json()


@pytest.mark.asyncio
async def test_create_and_list_users(client, admin_user, db):
    luis = await _create_seller(client)
    assert luis["email"] == "luis@example.com"
    assert luis["rol"] == settings.seller_role
    assert luis["activo"] is True
    stored = await db.get(User, luis["id"])
    assert verify_pw("clave-segura", stored.password_hash)
    await db.commit()

    r = await client.post("/users", json={"nombre": "Otro", "email": "LUIS@example.com", "password": "clave-segura", "roleName": settings.seller_role})
    assert r.status_code == 409
    assert r.json() == {"message": "El email ya está registrado", "code": "conflict"}
    r = await client.post("/users", json={"nombre": "Otro", "email": "otro@example.com", "password": "corta", "roleName": settings.seller_role})
    assert r.status_code == 400
    r = await client.post("/users", json={"nombre": "Otro", "email": "otro@example.com", "password": "clave-segura", "roleName": "Jefe"})
    assert r.json()["message"] == "Rol no válido"
    assert (await client.post("/users", json={"email": "x@example.com"})).status_code == 400

    sellers = (await client.get("/users", params={"role": settings.seller_role})).json()
    assert [u["email"] for u in sellers] == ["luis@example.com"]
    assert len((await client.get("/users", params={"active": True})).json()) == 2
    roles = (await client.get("/roles")).json()
    assert sorted(r["nombre"] for r in roles) == sorted([settings.admin_role, settings.seller_role])


@pytest.mark.asyncio
async def test_role_change_revokes_open_sessions(client, admin_user, db):
    luis = await _create_seller(client)
    db.add(
        DBSess(
            id="a" * 64,
            user_id=luis["id"],
            role=settings.seller_role,
            csrf_token="t",
            expires_at=datetime.utcnow() + timedelta(hours=1),
        )
    )
    await db.commit()

    r = await client.patch(f"/users/{luis['id']}", json={"apellido": "Gómez Peña"})
    assert r.json()["apellido"] == "Gómez Peña"
    count = select(func.count(DBSess.id)).where(DBSess.user_id == luis["id"])
    assert (await db.execute(count)).scalar_one() == 1
    await db.commit()

    r = await client.patch(f"/users/{luis['id']}", json={"roleName": settings.admin_role})
    assert r.status_code == 200, r.text
    assert r.json()["rol"] == settings.admin_role
    assert (await db.execute(count)).scalar_one() == 0

    assert (await client.patch(f"/users/{luis['id']}", json={})).status_code == 400
    assert (await client.patch(f"/users/{luis['id']}", json={"activo": "no"})).status_code == 400
    assert (await client.patch("/users/999", json={"nombre": "X"})).status_code == 404


@pytest.mark.asyncio
async def test_last_active_admin_is_protected(client, admin_user):
    r = await client.patch(f"/users/{admin_user.id}", json={"activo": False})
    assert r.status_code == 409
    assert r.json()["message"] == "Debe quedar al menos un administrador activo"
    assert (await client.delete(f"/users/{admin_user.id}")).status_code == 409

    luis = await _create_seller(client)
    assert (await client.delete(f"/users/{luis['id']}")).status_code == 204
    assert (await client.delete(f"/users/{luis['id']}")).status_code == 404
    assert [u["id"] for u in (await client.get("/users")).json()] == [admin_user.id]


@pytest.mark.asyncio
async def test_seller_cannot_manage_users(client_seller, admin_user):
    assert (await client_seller.get("/users")).status_code == 403
    assert (await client_seller.get("/roles")).status_code == 403
    r = await client_seller.post("/users", json={"nombre": "X", "email": "x@example.com", "password": "clave-segura"})
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_admin_can_be_demoted_while_another_remains(client, admin_user):
    r = await client.post(
        "/users",
        json={"nombre": "Eva", "email": "eva@example.com", "password": "clave-segura", "roleName": settings.admin_role},
    )
    assert r.status_code == 201, r.text
    r = await client.patch(f"/users/{admin_user.id}", json={"roleName": settings.seller_role})
    assert r.status_code == 200, r.text
    assert r.json()["rol"] == settings.seller_role
    r = await client.patch(f"/users/{r.json()['id']}", json={"roleName": settings.admin_role})
    assert r.status_code == 200
    eva = next(u for u in (await client.get("/users")).json() if u["email"] == "eva@example.com")
    assert (await client.patch(f"/users/{eva['id']}", json={"activo": False})).status_code == 200
