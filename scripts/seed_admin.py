# NG-HEADER: Nombre de archivo: seed_admin.py
# NG-HEADER: Ubicación: scripts/seed_admin.py
# NG-HEADER: Descripción: Script idempotente para crear roles y usuario administrador inicial (Argon2)
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Crea los roles Administrador/Vendedor y un usuario administrador.

Uso: ``python -m scripts.seed_admin`` con ADMIN_EMAIL / ADMIN_PASS en el entorno.
"""
import asyncio
import os

from sqlalchemy import func, select

from db.models import Role, User
from db.session import SessionLocal, engine, ensure_schema_if_sqlite
from inventario_core.config import settings
from services.auth import hash_pw


async def _get_or_create_role(session, nombre: str) -> Role:
    role = (
        await session.execute(select(Role).where(func.lower(Role.nombre) == nombre.lower()))
    ).scalar_one_or_none()
    if role is None:
        role = Role(nombre=nombre)
        session.add(role)
        await session.flush()
        print(f"[seed_admin] rol creado: {nombre}")
    return role


async def seed() -> None:
    print(f"[seed_admin] ENV={settings.env} DB={engine.url.render_as_string(hide_password=True)}")
    await ensure_schema_if_sqlite()

    email = os.getenv("ADMIN_EMAIL", "admin@inventario.local").strip().lower()
    password = os.getenv("ADMIN_PASS", "REEMPLAZAR_ADMIN_PASS")
    reset = os.getenv("RESET_ADMIN_PASS") or ("1" if settings.env == "dev" else "0")
    if password == "REEMPLAZAR_ADMIN_PASS":
        print("WARN: ADMIN_PASS placeholder; usando contraseña temporal: admin1234")
        password = "admin1234"

    async with SessionLocal() as session:
        admin_role = await _get_or_create_role(session, settings.admin_role)
        await _get_or_create_role(session, settings.seller_role)
        user = (
            await session.execute(select(User).where(func.lower(User.email) == email))
        ).scalar_one_or_none()
        if user is None:
            session.add(
                User(
                    nombre="Administrador",
                    email=email,
                    password_hash=hash_pw(password),
                    role_id=admin_role.id,
                    activo=True,
                )
            )
            print("Seeded admin user:", email)
        elif reset not in {"0", "false", "False", "no", "NO"}:
            user.password_hash = hash_pw(password)
            print("Admin user exists; password reset applied")
        else:
            print("Admin user already exists")
        await session.commit()


if __name__ == "__main__":
    asyncio.run(seed())
