# NG-HEADER: Nombre de archivo: parsing.py
# NG-HEADER: Ubicación: services/inventory/parsing.py
# NG-HEADER: Descripción: Conversión de valores de payloads JSON con errores de validación.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Helpers para leer payloads ``dict`` de los routers.

Todos lanzan ``ValidationError`` con un mensaje apto para el usuario.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from .errors import ValidationError


class _Unset:
    """Marca de campo ausente en el payload (distinto de ``null``)."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def first_key(payload: Mapping[str, Any], *keys: str) -> Any:
    """Devuelve el valor de la primera clave presente o ``UNSET``."""
    for k in keys:
        if k in payload:
            return payload[k]
    return UNSET


def _blank(value: Any) -> bool:
    return value is None or value is UNSET or (isinstance(value, str) and not value.strip())


def parse_id(value: Any, message: str, *, required: bool = True) -> Optional[int]:
    if _blank(value):
        if required:
            raise ValidationError(message)
        return None
    if isinstance(value, bool):
        raise ValidationError(message)
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(message)
    if parsed <= 0:
        raise ValidationError(message)
    return parsed


def _parse_int(value: Any, message: str) -> int:
    """Entero exacto: rechaza booleanos y flotantes con decimales."""
    if isinstance(value, bool):
        raise ValidationError(message)
    try:
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(value)
        return int(str(value).strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(message)


def parse_quantity(value: Any) -> int:
    """Entero estrictamente positivo."""
    qty = _parse_int(value, "La cantidad debe ser un número entero")
    if qty <= 0:
        raise ValidationError("La cantidad debe ser mayor a 0")
    return qty


def parse_non_negative_int(value: Any, field: str) -> int:
    parsed = _parse_int(value, f"{field} debe ser un número entero")
    if parsed < 0:
        raise ValidationError(f"{field} no puede ser negativo")
    return parsed


def parse_money(value: Any, message: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(message)
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(message)
    if not amount.is_finite():
        raise ValidationError(message)
    return amount.quantize(Decimal("0.01"))


def parse_date(value: Any, message: str) -> Optional[date]:
    """Acepta ``YYYY-MM-DD`` o ISO-8601 completo; vacío o ``null`` -> ``None``.

    El texto entero debe ser válido: ``2024-05-01basura`` se rechaza.
    """
    if _blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    try:
        if len(raw) == 10:
            return date.fromisoformat(raw)
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValidationError(message)


def parse_text(value: Any) -> Optional[str]:
    if _blank(value):
        return None
    return str(value).strip()


def parse_datetime_filter(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """Filtros ``from``/``to`` de listados: fecha o fecha-hora ISO.

    Con sólo fecha y ``end_of_day`` se toma el último instante del día.
    """
    if _blank(value):
        return None
    raw = str(value).strip()
    try:
        if len(raw) <= 10:
            d = date.fromisoformat(raw)
            return datetime.combine(d, datetime.max.time() if end_of_day else datetime.min.time())
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError("Fechas inválidas")
    # Las columnas se guardan en UTC naive
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


__all__ = [
    "UNSET",
    "first_key",
    "parse_id",
    "parse_quantity",
    "parse_non_negative_int",
    "parse_money",
    "parse_date",
    "parse_text",
    "parse_datetime_filter",
]
