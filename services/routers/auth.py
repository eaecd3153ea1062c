# NG-HEADER: Nombre de archivo: auth.py
# NG-HEADER: Ubicación: services/routers/auth.py
# NG-HEADER: Descripción: Login, logout y perfil de la sesión actual.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Endpoints de autenticación."""

import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import User
from db.session import get_session
from inventario_core.config import settings
from services.auth import (
    GUEST_ROLE,
    SessionData,
    check_login_rate_limit,
    create_session,
    current_session,
    record_failed_login,
    require_csrf,
    reset_login_attempts,
    set_session_cookies,
    verify_pw,
)

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger("inventario.auth")


class LoginIn(BaseModel):
    email: str
    password: str


def _user_dict(user: User) -> dict:
    return {
        "id": user.id,
        "nombre": user.nombre,
        "apellido": user.apellido,
        "email": user.email,
        "rol": user.role_name,
    }


@router.post("/login")
async def login(payload: LoginIn, request: Request, db: AsyncSession = Depends(get_session)):
    tag = secrets.token_hex(4)
    ip = request.client.host if request.client else "unknown"
    check_login_rate_limit(ip)

    email = (payload.email or "").strip().lower()
    res = await db.execute(select(User).where(func.lower(User.email) == email))
    user = res.scalar_one_or_none()
    if user is None or not user.activo or not verify_pw(payload.password, user.password_hash):
        logger.debug("[login:rejected] tag=%s email=%s", tag, email)
        record_failed_login(ip)
        raise HTTPException(status_code=401, detail="Credenciales inválidas")

    reset_login_attempts(ip)
    prev = await current_session(request, db)
    sess, csrf = await create_session(db, user.role_name, request, user, prev_session=prev.session)
    resp = JSONResponse(_user_dict(user))
    await set_session_cookies(resp, sess.id, csrf, request)
    logger.info("[login:ok] tag=%s user_id=%s role=%s", tag, user.id, user.role_name)
    return resp


@router.post("/logout", dependencies=[Depends(require_csrf)])
async def logout(request: Request, db: AsyncSession = Depends(get_session)):
    prev = await current_session(request, db)
    sess, csrf = await create_session(db, GUEST_ROLE, request, prev_session=prev.session)
    resp = JSONResponse({"status": "ok"})
    await set_session_cookies(resp, sess.id, csrf, request)
    return resp


@router.get("/me")
async def me(sess: SessionData = Depends(current_session)):
    if sess.user is None:
        # En dev con DEV_ASSUME_ADMIN el resolvedor entrega rol admin sin sesión
        if settings.env == "dev" and sess.role == settings.admin_role:
            return {"is_authenticated": True, "role": sess.role}
        return {"is_authenticated": False, "role": GUEST_ROLE}
    return {"is_authenticated": True, "role": sess.role, "user": _user_dict(sess.user)}
