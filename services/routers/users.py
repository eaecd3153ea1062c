# NG-HEADER: Nombre de archivo: users.py
# NG-HEADER: Ubicación: services/routers/users.py
# NG-HEADER: Descripción: Administración de usuarios y listado de roles.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Usuarios del sistema.

Sólo el administrador gestiona cuentas. Cambiar rol, contraseña o estado
revoca las sesiones abiertas del usuario: el rol queda fijado en la sesión
al hacer login.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Role, Session as DBSess, User
from db.session import get_session
from inventario_core.config import settings
from services.auth import SessionData, hash_pw, require_admin, require_csrf
from services.inventory.errors import ConflictError, NotFoundError, ValidationError
from services.inventory.parsing import parse_id, parse_text
from services.inventory.uow import unit_of_work

router = APIRouter(tags=["users"])

logger = logging.getLogger("inventario.users")

_write = [Depends(require_csrf)]
MIN_PASSWORD = 8


def _user_dict(u: User) -> dict[str, Any]:
    return {
        "id": u.id,
        "nombre": u.nombre,
        "apellido": u.apellido,
        "email": u.email,
        "rol": u.role_name,
        "roleId": u.role_id,
        "activo": u.activo,
        "fechaCreacion": u.created_at.isoformat() if u.created_at else None,
    }


async def _resolve_role(db: AsyncSession, payload: dict) -> Role:
    """Rol por ``roleId`` o por nombre (``roleName``/``rol``)."""
    if payload.get("roleId") not in (None, ""):
        role = await db.get(Role, parse_id(payload["roleId"], "Rol no válido"))
    else:
        nombre = parse_text(payload.get("roleName", payload.get("rol")))
        if not nombre:
            raise ValidationError("Rol no válido")
        stmt = select(Role).where(func.lower(Role.nombre) == nombre.lower())
        role = (await db.execute(stmt)).scalars().first()
    if role is None:
        raise ValidationError("Rol no válido")
    return role


def _password(value: Any) -> str:
    pwd = value if isinstance(value, str) else ""
    if len(pwd) < MIN_PASSWORD:
        raise ValidationError(f"La contraseña debe tener al menos {MIN_PASSWORD} caracteres")
    return pwd


async def _ensure_email_free(db: AsyncSession, email: str, *, exclude_id: Optional[int] = None) -> None:
    stmt = select(User.id).where(func.lower(User.email) == email)
    found = (await db.execute(stmt)).scalars().first()
    if found is not None and found != exclude_id:
        raise ConflictError("El email ya está registrado")


async def _active_admins(db: AsyncSession) -> int:
    stmt = (
        select(func.count(User.id))
        .join(Role, Role.id == User.role_id)
        .where(User.activo.is_(True), func.lower(Role.nombre) == settings.admin_role.lower())
    )
    return int((await db.execute(stmt)).scalar_one())


def _is_admin(user: User) -> bool:
    return user.role_name.lower() == settings.admin_role.lower()


@router.get("/roles", dependencies=[Depends(require_admin())])
async def list_roles(db: AsyncSession = Depends(get_session)):
    rows = (await db.execute(select(Role).order_by(Role.nombre))).scalars().all()
    return [{"id": r.id, "nombre": r.nombre} for r in rows]


@router.get("/users", dependencies=[Depends(require_admin())])
async def list_users(
    role: Optional[str] = None,
    active: Optional[bool] = None,
    db: AsyncSession = Depends(get_session),
):
    stmt = select(User).join(Role, Role.id == User.role_id).order_by(User.created_at.desc(), User.id.desc())
    if role:
        stmt = stmt.where(func.lower(Role.nombre) == role.strip().lower())
    if active is not None:
        stmt = stmt.where(User.activo.is_(active))
    return [_user_dict(u) for u in (await db.execute(stmt)).scalars().unique().all()]


@router.post("/users", status_code=201, dependencies=_write)
async def create_user(
    payload: dict,
    db: AsyncSession = Depends(get_session),
    sess: SessionData = Depends(require_admin()),
):
    nombre = parse_text(payload.get("nombre"))
    email = (parse_text(payload.get("email")) or "").lower()
    if not nombre or not email or "password" not in payload:
        raise ValidationError("Nombre, email y contraseña son obligatorios")
    if "@" not in email:
        raise ValidationError("Email no válido")
    pwd = _password(payload.get("password"))
    async with unit_of_work(db):
        role = await _resolve_role(db, payload)
        await _ensure_email_free(db, email)
        user = User(
            nombre=nombre,
            apellido=parse_text(payload.get("apellido")),
            email=email,
            password_hash=hash_pw(pwd),
            role_id=role.id,
            activo=bool(payload.get("activo", True)),
        )
        user.role = role
        db.add(user)
        await db.flush()
    logger.info("[users:create] user_id=%s role=%s by=%s", user.id, role.nombre, sess.acting_user_id)
    return _user_dict(user)


@router.patch("/users/{user_id}", dependencies=_write)
async def update_user(
    user_id: int,
    payload: dict,
    db: AsyncSession = Depends(get_session),
    sess: SessionData = Depends(require_admin()),
):
    revoke = False
    async with unit_of_work(db):
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError("Usuario no encontrado")
        was_admin = _is_admin(user) and user.activo
        changed = False
        if "nombre" in payload:
            nombre = parse_text(payload["nombre"])
            if not nombre:
                raise ValidationError("El nombre es obligatorio")
            user.nombre = nombre
            changed = True
        if "apellido" in payload:
            user.apellido = parse_text(payload["apellido"])
            changed = True
        if "email" in payload:
            email = (parse_text(payload["email"]) or "").lower()
            if "@" not in email:
                raise ValidationError("Email no válido")
            await _ensure_email_free(db, email, exclude_id=user.id)
            user.email = email
            changed = True
        if "password" in payload:
            user.password_hash = hash_pw(_password(payload["password"]))
            changed = revoke = True
        if any(k in payload for k in ("roleId", "roleName", "rol")):
            role = await _resolve_role(db, payload)
            if role.id != user.role_id:
                user.role_id = role.id
                user.role = role
                revoke = True
            changed = True
        if "activo" in payload:
            if not isinstance(payload["activo"], bool):
                raise ValidationError("activo debe ser booleano")
            if user.activo != payload["activo"]:
                user.activo = payload["activo"]
                revoke = True
            changed = True
        if not changed:
            raise ValidationError("No hay campos para actualizar")
        if was_admin and not (_is_admin(user) and user.activo):
            await db.flush()
            if await _active_admins(db) == 0:
                raise ConflictError("Debe quedar al menos un administrador activo")
        if revoke:
            await db.execute(delete(DBSess).where(DBSess.user_id == user.id))
        await db.flush()
    logger.info("[users:update] user_id=%s revoked=%s by=%s", user_id, revoke, sess.acting_user_id)
    return _user_dict(user)


@router.delete("/users/{user_id}", status_code=204, dependencies=_write)
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_session),
    sess: SessionData = Depends(require_admin()),
):
    if sess.acting_user_id == user_id:
        raise ValidationError("No puedes eliminar tu propio usuario")
    async with unit_of_work(db):
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError("Usuario no encontrado")
        if _is_admin(user) and user.activo and await _active_admins(db) <= 1:
            raise ConflictError("Debe quedar al menos un administrador activo")
        await db.execute(delete(DBSess).where(DBSess.user_id == user.id))
        await db.delete(user)
    logger.info("[users:delete] user_id=%s by=%s", user_id, sess.acting_user_id)
    return Response(status_code=204)
