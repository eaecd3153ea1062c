# NG-HEADER: Nombre de archivo: config.py
# NG-HEADER: Ubicación: inventario_core/config.py
# NG-HEADER: Descripción: Configuración central del backend de inventario.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Configuración leída del entorno (y de ``.env`` si existe).

Se instancia una sola vez como ``settings``; los módulos la importan de aquí.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import quote_plus

from dotenv import load_dotenv

SECRET_KEY_PLACEHOLDER = "REEMPLAZAR_SECRET_KEY"
DEV_ORIGIN = "http://localhost:3000"
_LOOPBACK = ("http://localhost:", "http://127.0.0.1:")

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


def _mirror_loopback(origins: list[str]) -> list[str]:
    """En dev cada origen localhost se acepta también como 127.0.0.1 y viceversa."""
    out: set[str] = set()
    for origin in filter(None, (o.strip() for o in origins)):
        out.add(origin)
        for src, dst in (_LOOPBACK, _LOOPBACK[::-1]):
            if origin.startswith(src):
                out.add(dst + origin[len(src):])
    return sorted(out)


@dataclass
class Settings:
    """Parámetros del backend. Ver ``.env.example`` para la lista completa."""

    env: str = os.getenv("ENV", "dev")

    # Base de datos: DB_URL directa o compuesta desde las piezas sueltas
    db_url: str = os.getenv("DB_URL", "")
    db_host: str = os.getenv("DB_HOST", "localhost")
    db_port: str = os.getenv("DB_PORT", "5432")
    db_name: str = os.getenv("DB_NAME", "inventario")
    db_user: str = os.getenv("DB_USER", "inventario")
    db_pass: str = os.getenv("DB_PASS", "")

    # Sesiones y CORS
    secret_key: str = os.getenv("SECRET_KEY", SECRET_KEY_PLACEHOLDER)
    session_expire_minutes: int = int(os.getenv("SESSION_EXPIRE_MINUTES", "1440"))
    cookie_secure: bool = _flag("COOKIE_SECURE")
    cookie_domain: str | None = os.getenv("COOKIE_DOMAIN") or None
    allowed_origins: list[str] = field(default_factory=list)
    # Sólo dev: sin cookie se asume rol administrador
    dev_assume_admin: bool = _flag("DEV_ASSUME_ADMIN")
    # Sólo dev: acepta X-User-Roles / X-User-Id sin sesión
    trust_role_headers: bool = _flag("TRUST_ROLE_HEADERS")

    # Roles de negocio
    admin_role: str = os.getenv("ADMIN_ROLE_NAME", "Administrador")
    seller_role: str = os.getenv("SELLER_ROLE_NAME", "Vendedor")

    # Correo saliente (notificaciones de salidas)
    smtp_host: str = os.getenv("SMTP_HOST", "")
    smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
    smtp_secure: bool = _flag("SMTP_SECURE")
    smtp_user: str = os.getenv("SMTP_USER", "")
    smtp_pass: str = os.getenv("SMTP_PASS", "")
    smtp_from: str = os.getenv("SMTP_FROM", "")
    smtp_timeout: int = int(os.getenv("SMTP_TIMEOUT", "15"))  # segundos
    app_url: str = os.getenv("APP_PORTAL_URL", DEV_ORIGIN)

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"

    def _resolve_db_url(self) -> str:
        if self.db_url:
            return self.db_url
        auth = ""
        if self.db_user and self.db_pass:
            auth = f"{self.db_user}:{quote_plus(self.db_pass)}@"
        elif self.db_user and not self.is_dev:
            auth = f"{self.db_user}@"
        if auth:
            return f"postgresql+psycopg://{auth}{self.db_host}:{self.db_port}/{self.db_name}"
        if self.is_dev:
            # Sin Postgres configurado, dev arranca sobre un archivo SQLite local
            return "sqlite+aiosqlite:///./dev.db"
        raise RuntimeError("DB_URL debe definirse en el entorno")

    def _resolve_origins(self) -> list[str]:
        origins = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()]
        if self.is_dev:
            return _mirror_loopback(origins or [DEV_ORIGIN])
        if not origins:
            raise RuntimeError("En producción, ALLOWED_ORIGINS debe definir al menos un origen")
        return origins

    def __post_init__(self) -> None:
        self.db_url = self._resolve_db_url()
        if self.secret_key == SECRET_KEY_PLACEHOLDER:
            if not self.is_dev:
                raise RuntimeError(f"SECRET_KEY debe sobrescribirse; el valor '{SECRET_KEY_PLACEHOLDER}' no es válido")
            self.secret_key = "dev-secret-key"
        self.smtp_from = self.smtp_from or self.smtp_user
        self.allowed_origins = self._resolve_origins()
        if self.dev_assume_admin and not self.is_dev:
            logging.getLogger("inventario.config").warning(
                "SEGURIDAD: DEV_ASSUME_ADMIN ignorado con ENV=%s", self.env
            )
            self.dev_assume_admin = False
        if self.trust_role_headers and not self.is_dev:
            logging.getLogger("inventario.config").warning(
                "SEGURIDAD: TRUST_ROLE_HEADERS ignorado con ENV=%s", self.env
            )
            self.trust_role_headers = False

    @property
    def email_enabled(self) -> bool:
        """El correo sólo se habilita con host, usuario y contraseña definidos."""
        return bool(self.smtp_host and self.smtp_user and self.smtp_pass)


settings = Settings()
