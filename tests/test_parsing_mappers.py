# NG-HEADER: Nombre de archivo: test_parsing_mappers.py
# NG-HEADER: Ubicación: tests/test_parsing_mappers.py
# NG-HEADER: Descripción: Lectura de payloads y serialización de vistas a camelCase
# NG-HEADER: Lineamientos: Ver AGENTS.md
from datetime import date, datetime
from decimal import Decimal

import pytest

from db.models import Brand, Model, Pedido, ProductType, Supplier
from services.inventory.errors import ValidationError
from services.inventory.mappers import PRODUCTO_PENDIENTE, money, pedido_view, resolve_producto_nombre
from services.inventory.parsing import (
    UNSET,
    first_key,
    parse_date,
    parse_datetime_filter,
    parse_id,
    parse_money,
    parse_non_negative_int,
    parse_quantity,
)


def test_parse_quantity_rules():
    assert parse_quantity("3") == 3
    assert parse_quantity(2.0) == 2
    with pytest.raises(ValidationError, match="mayor a 0"):
        parse_quantity(0)
    with pytest.raises(ValidationError, match="número entero"):
        parse_quantity("dos")
    with pytest.raises(ValidationError, match="número entero"):
        parse_quantity(1.5)
    with pytest.raises(ValidationError, match="número entero"):
        parse_quantity(True)


def test_parse_id_and_optional():
    assert parse_id("7", "x") == 7
    assert parse_id(None, "x", required=False) is None
    with pytest.raises(ValidationError, match="Suplidor"):
        parse_id("", "Suplidor no existe")
    with pytest.raises(ValidationError):
        parse_id(-1, "x")


def test_first_key_distinguishes_missing_from_null():
    assert first_key({"a": None}, "a") is None
    assert first_key({}, "a") is UNSET
    assert first_key({"b": 2}, "a", "b") == 2


def test_money_and_dates():
    assert parse_money("10.006", "x") == Decimal("10.01")
    assert money(Decimal("3.456")) == 3.46
    assert parse_date("2024-05-01T10:00:00Z", "x") == date(2024, 5, 1)
    assert parse_date("", "x") is None
    with pytest.raises(ValidationError, match="Fecha"):
        parse_date("01/05/2024", "Fecha no válida")


def test_parse_date_rejects_trailing_text():
    with pytest.raises(ValidationError, match="Fecha no válida"):
        parse_date("2024-05-01basura", "Fecha no válida")
    with pytest.raises(ValidationError, match="Fecha no válida"):
        parse_date("2024-05-01 mañana", "Fecha no válida")
    assert parse_date(" 2024-05-01 ", "x") == date(2024, 5, 1)


def test_parse_non_negative_int_is_exact():
    assert parse_non_negative_int("4", "stockMinimo") == 4
    assert parse_non_negative_int(3.0, "stockMinimo") == 3
    assert parse_non_negative_int(0, "stockMinimo") == 0
    for bad in (True, 2.7, "2.7", None):
        with pytest.raises(ValidationError, match="stockMinimo debe ser un número entero"):
            parse_non_negative_int(bad, "stockMinimo")
    with pytest.raises(ValidationError, match="no puede ser negativo"):
        parse_non_negative_int(-1, "stockMinimo")


def test_datetime_filter_end_of_day_and_timezone():
    assert parse_datetime_filter("2024-05-01", end_of_day=True).hour == 23
    parsed = parse_datetime_filter("2024-05-01T12:00:00-04:00")
    assert parsed == datetime(2024, 5, 1, 16, 0)
    with pytest.raises(ValidationError, match="Fechas inválidas"):
        parse_datetime_filter("ayer")


def _pedido(**kw) -> Pedido:
    base = dict(
        id=1,
        suplidor_id=1,
        cantidad_solicitada=5,
        estado="Pendiente",
        fecha_pedido=datetime(2024, 5, 1, 9, 30),
    )
    base.update(kw)
    return Pedido(**base)


def test_resolve_producto_nombre_fallbacks():
    p = _pedido(nombre_producto="  Galaxy  ")
    assert resolve_producto_nombre(p) == "Galaxy"

    p = _pedido()
    p.marca = Brand(nombre="Samsung")
    p.modelo = Model(nombre="A15")
    assert resolve_producto_nombre(p) == "Samsung • A15"

    p = _pedido()
    p.tipo_producto = ProductType(nombre="Celulares")
    assert resolve_producto_nombre(p) == "Celulares pendiente"

    assert resolve_producto_nombre(_pedido()) == PRODUCTO_PENDIENTE


def test_pedido_view_to_dict_is_camel_case():
    p = _pedido(costo_unitario=Decimal("12.5"), fecha_esperada=date(2024, 5, 10))
    p.suplidor = Supplier(nombre_empresa="Norte")
    out = pedido_view(p).to_dict()
    assert out["cantidadSolicitada"] == 5
    assert out["supplierNombre"] == "Norte"
    assert out["costPrice"] == 12.5
    assert out["fechaEsperada"] == "2024-05-10"
    assert out["fechaPedido"] == "2024-05-01T09:30:00"
    assert out["productoNombre"] == PRODUCTO_PENDIENTE
