# NG-HEADER: Nombre de archivo: api.py
# NG-HEADER: Ubicación: services/api.py
# NG-HEADER: Descripción: Aplicación FastAPI: logging, middlewares, handlers de error y routers.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Aplicación FastAPI principal del inventario."""

import logging
import os
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi import HTTPException as FastHTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from db.session import engine, ensure_schema_if_sqlite
from inventario_core.config import settings
from services.inventory.errors import InternalError, InventoryError

from .routers import auth, catalog, health, movimientos, pedidos, products, salidas, users

raw_level = os.getenv("LOG_LEVEL", "INFO") or "INFO"
level_name = raw_level.strip().upper()
if level_name not in logging.getLevelNamesMapping():
    level_name = "INFO"
logger = logging.getLogger("inventario")
logger.setLevel(level_name)
LOG_DIR = Path(__file__).resolve().parents[1] / "logs"
fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
stream_handler = logging.StreamHandler()
stream_handler.setFormatter(fmt)

file_handler = None
try:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    # delay=True: el archivo se abre con el primer log
    file_handler = RotatingFileHandler(
        str(LOG_DIR / "backend.log"), maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8", delay=True
    )
    file_handler.setFormatter(fmt)
    logger.addHandler(file_handler)
except OSError:
    # Sin permisos de escritura: solo consola
    file_handler = None

logger.addHandler(stream_handler)

handlers = [h for h in (file_handler, stream_handler) if h is not None]
for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    logging.getLogger(name).handlers = handlers
    logging.getLogger(name).setLevel(level_name)

GENERIC_ERROR = "Ocurrió un error inesperado. Intenta de nuevo más tarde."

# `redirect_slashes=False` evita redirecciones 307 entre `/ruta` y `/ruta/`,
# lo que rompe las solicitudes *preflight* de CORS.
app = FastAPI(title="Inventario Cibao", redirect_slashes=False)
logger.info("DB effective URL: %s", engine.url.render_as_string(hide_password=True))


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Registra cada solicitud y captura excepciones con un correlation-id."""
    start = time.perf_counter()
    corr = request.headers.get("x-correlation-id") or request.headers.get("x-request-id")
    if not corr:
        corr = f"req-{int(time.time() * 1000):x}-{os.getpid():x}"
    try:
        resp = await call_next(request)
    except (FastHTTPException, StarletteHTTPException):
        raise
    except Exception:
        dur = (time.perf_counter() - start) * 1000
        logger.exception("EXC %s %s cid=%s (%.2fms)", request.method, request.url.path, corr, dur)
        return JSONResponse(
            {"message": GENERIC_ERROR, "code": InternalError.code},
            status_code=500,
            headers={"X-Correlation-Id": corr},
        )
    dur = (time.perf_counter() - start) * 1000
    resp.headers["X-Correlation-Id"] = corr
    logger.info("%s %s -> %s cid=%s (%.2fms)", request.method, request.url.path, resp.status_code, corr, dur)
    return resp


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):  # type: ignore[override]
    """Errores de negocio: ``{"message", "code"}`` con el status de la clase."""
    if isinstance(exc, InternalError):
        logger.error("Error interno %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse({"message": GENERIC_ERROR, "code": exc.code}, status_code=exc.status_code)
    logger.info(
        "Regla de negocio %s %s -> %s %s: %s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.code,
        exc.message,
    )
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):  # type: ignore[override]
    """Violaciones de unicidad o FK que escaparon a las validaciones previas: 409 genérico."""
    logger.warning("IntegrityError %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse({"message": "conflict", "code": "conflict"}, status_code=409)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
    """Loguea los campos inválidos y mantiene el formato por defecto de FastAPI (422)."""
    flat = [
        {"loc": ".".join(str(p) for p in e.get("loc", [])), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in exc.errors()
    ]
    logger.warning("Validación fallida 422 %s %s: %s", request.method, request.url.path, flat)
    return JSONResponse(status_code=422, content={"detail": exc.errors()})


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(catalog.router)
app.include_router(users.router)
app.include_router(products.router)
app.include_router(pedidos.router)
app.include_router(salidas.router)
app.include_router(movimientos.router)
app.include_router(health.router)


@app.on_event("startup")
async def _init_schema():
    """Auto-crea el esquema cuando usamos SQLite (dev/tests)."""
    await ensure_schema_if_sqlite()
