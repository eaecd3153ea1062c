# NG-HEADER: Nombre de archivo: auth.py
# NG-HEADER: Ubicación: services/auth.py
# NG-HEADER: Descripción: Sesiones por cookie, control de roles y hashing de contraseñas.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Utilidades de autenticación y manejo de sesiones."""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.responses import Response
from passlib.hash import argon2
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Session as DBSess, User
from db.session import get_session
from inventario_core.config import settings

SESSION_COOKIE = "inventario_session"
CSRF_COOKIE = "csrf_token"
GUEST_ROLE = "guest"

logger = logging.getLogger("inventario.auth")


def hash_pw(pwd: str) -> str:
    """Hashea una contraseña usando Argon2id."""

    return argon2.using(type="ID").hash(pwd)


def verify_pw(pwd: str, hashed: str) -> bool:
    """Verifica una contraseña contra el hash almacenado."""

    try:
        return argon2.verify(pwd, hashed)
    except ValueError:
        # Hash con formato inválido en la base
        return False


@dataclass
class SessionData:
    """Información de la sesión resuelta desde la cookie."""

    session: Optional[DBSess]
    user: Optional[User]
    role: str
    user_id: Optional[int] = None

    @property
    def acting_user_id(self) -> Optional[int]:
        if self.user is not None:
            return self.user.id
        return self.user_id


async def set_session_cookies(resp: Response, sid: str, csrf: str, request: Request | None = None) -> None:
    """Configura cookies de sesión y CSRF, eliminando las previas."""

    resp.delete_cookie(SESSION_COOKIE)
    resp.delete_cookie(CSRF_COOKIE)

    max_age = settings.session_expire_minutes * 60
    secure = settings.cookie_secure or settings.env == "production"
    # En localhost por HTTP nunca marcamos Secure para que el navegador acepte la cookie
    if request is not None and request.url.hostname in {"localhost", "127.0.0.1"} and request.url.scheme == "http":
        secure = False
    cookie_args = {
        "httponly": True,
        "samesite": "lax",
        "secure": secure,
    }
    if settings.cookie_domain:
        cookie_args["domain"] = settings.cookie_domain
    resp.set_cookie(SESSION_COOKIE, sid, max_age=max_age, **cookie_args)

    cookie_args["httponly"] = False
    resp.set_cookie(CSRF_COOKIE, csrf, max_age=max_age, **cookie_args)
    logger.debug("[cookies:set] session=%s secure=%s", sid[:12], secure)


async def create_session(
    db: AsyncSession,
    role: str,
    request: Request,
    user: User | None = None,
    prev_session: DBSess | None = None,
) -> tuple[DBSess, str]:
    """Genera una nueva sesión persistida y devuelve el objeto y token CSRF.

    Si se proporciona ``prev_session`` la elimina previamente para que el
    identificador se regenere en login y logout."""

    if prev_session:
        await db.delete(prev_session)

    sid = secrets.token_hex(32)
    csrf = secrets.token_urlsafe(24)
    expires = datetime.utcnow() + timedelta(minutes=settings.session_expire_minutes)
    sess = DBSess(
        id=sid,
        user_id=user.id if user else None,
        role=role,
        csrf_token=csrf,
        expires_at=expires,
        ip=request.client.host if request.client else None,
        user_agent=(request.headers.get("user-agent") or "")[:200] or None,
    )
    db.add(sess)
    await db.commit()
    return sess, csrf


def _dev_fallback() -> SessionData:
    role = settings.admin_role if (settings.env == "dev" and settings.dev_assume_admin) else GUEST_ROLE
    return SessionData(None, None, role)


async def _lookup_session(db: AsyncSession, sid: str) -> SessionData:
    res = await db.execute(select(DBSess).where(DBSess.id == sid))
    sess: DBSess | None = res.scalar_one_or_none()
    if not sess or sess.expires_at < datetime.utcnow():
        return _dev_fallback()

    user: User | None = None
    if sess.user_id:
        user = await db.get(User, sess.user_id)
        if user is None or not user.activo:
            return SessionData(None, None, GUEST_ROLE)
    return SessionData(sess, user, sess.role, sess.user_id)


async def current_session(
    request: Request, db: AsyncSession = Depends(get_session)
) -> SessionData:
    """Resuelve la sesión actual a partir de la cookie.

    La lectura cierra su transacción al terminar: la sesión de base es la
    misma del request y las operaciones de stock abren la suya con
    aislamiento SERIALIZABLE.
    """

    sid = request.cookies.get(SESSION_COOKIE)
    if not sid:
        return _dev_fallback()
    data = await _lookup_session(db, sid)
    await db.commit()
    return data


def _header_roles(request: Request) -> list[str]:
    if not (settings.trust_role_headers and settings.is_dev):
        return []
    return [r.strip().lower() for r in (request.headers.get("x-user-roles") or "").split(",") if r.strip()]


def require_roles(*roles: str) -> Callable[..., SessionData]:
    """Dependencia que asegura que la sesión tenga uno de los roles permitidos.

    Con ``TRUST_ROLE_HEADERS`` activo y ``ENV=dev`` acepta además las
    cabeceras ``X-User-Roles`` / ``X-User-Id``; fuera de eso se ignoran.
    """
    allowed = {r.lower() for r in roles}

    async def dep(
        request: Request, sess: SessionData = Depends(current_session)
    ) -> SessionData:
        hdr_roles = _header_roles(request)
        if hdr_roles:
            eff_role = next((r for r in hdr_roles if r in allowed), None)
            if eff_role is None:
                raise HTTPException(status_code=403, detail="Forbidden")
            hdr_uid = request.headers.get("x-user-id")
            uid = int(hdr_uid) if hdr_uid and hdr_uid.isdigit() else sess.acting_user_id
            return SessionData(sess.session, sess.user, eff_role, uid)

        if (sess.role or "").lower() not in allowed:
            if sess.role == GUEST_ROLE:
                raise HTTPException(status_code=401, detail="Usuario no autenticado")
            raise HTTPException(status_code=403, detail="Forbidden")
        return sess

    return dep


def require_admin() -> Callable[..., SessionData]:
    return require_roles(settings.admin_role)


def require_staff() -> Callable[..., SessionData]:
    """Administrador o Vendedor."""
    return require_roles(settings.admin_role, settings.seller_role)


async def require_csrf(request: Request) -> None:
    """Valida el token CSRF en mutaciones."""

    if request.method in {"GET", "HEAD", "OPTIONS"}:
        return
    cookie = request.cookies.get(CSRF_COOKIE)
    header = request.headers.get("X-CSRF-Token")
    if not cookie or not header or cookie != header:
        raise HTTPException(status_code=403, detail="CSRF invalid")


_LOGIN_WINDOW = 15 * 60
_MAX_ATTEMPTS = 10
_login_attempts: dict[str, list[float]] = {}


def check_login_rate_limit(ip: str) -> None:
    """Aplica rate limit por IP para el login."""

    now = time.time()
    attempts = [t for t in _login_attempts.get(ip, []) if now - t < _LOGIN_WINDOW]
    if len(attempts) >= _MAX_ATTEMPTS:
        raise HTTPException(status_code=429, detail="Too Many Requests")
    _login_attempts[ip] = attempts


def record_failed_login(ip: str) -> None:
    _login_attempts.setdefault(ip, []).append(time.time())


def reset_login_attempts(ip: str) -> None:
    _login_attempts.pop(ip, None)


__all__ = [
    "SessionData",
    "hash_pw",
    "verify_pw",
    "create_session",
    "set_session_cookies",
    "current_session",
    "require_roles",
    "require_admin",
    "require_staff",
    "require_csrf",
    "check_login_rate_limit",
    "record_failed_login",
    "reset_login_attempts",
]
