# NG-HEADER: Nombre de archivo: reports.py
# NG-HEADER: Ubicación: services/inventory/reports.py
# NG-HEADER: Descripción: Reportes de salidas y entradas en Excel (XML 2003 o xlsx).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Reporte de movimientos por rango de fechas.

- ``scope``: ``salidas`` (default), ``entradas`` o ``todo`` (una hoja por tipo).
- ``format``: ``xls`` (SpreadsheetML, Excel 2003 XML) o ``xlsx`` (openpyxl).
"""
from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db.models import DetalleSalida, Salida, StockMovement

from .errors import ValidationError

SCOPES = ("salidas", "entradas", "todo")
FORMATS = ("xls", "xlsx")
XLS_MEDIA_TYPE = "application/vnd.ms-excel"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SALIDAS_HEADER = ["Ticket", "Fecha", "Vendedor", "Productos", "Estado", "Tipo venta", "Monto"]
ENTRADAS_HEADER = ["Producto", "Fecha", "Cantidad", "Stock anterior", "Stock nuevo", "Registrado por", "Observación"]


@dataclass
class ReportRequest:
    start: date
    end: date
    scope: str = "salidas"
    fmt: str = "xls"

    @property
    def range_label(self) -> str:
        return f"{self.start.strftime('%d/%m/%Y')} - {self.end.strftime('%d/%m/%Y')}"

    @property
    def filename(self) -> str:
        suffix = "movimientos" if self.scope == "todo" else self.scope
        return f"reporte_{suffix}_{self.start.isoformat()}_{self.end.isoformat()}.{self.fmt}"


@dataclass
class SalidaRow:
    ticket: str
    fecha: datetime
    vendedor: str
    productos: str
    estado: str
    tipo_venta: str
    total: Decimal


@dataclass
class EntradaRow:
    producto: str
    fecha: datetime
    cantidad: int
    stock_anterior: int
    stock_nuevo: int
    usuario: str
    observacion: Optional[str]


@dataclass
class ReportFile:
    filename: str
    content: bytes
    media_type: str


def parse_report_request(
    start: Optional[str], end: Optional[str], scope: Optional[str] = None, fmt: Optional[str] = None
) -> ReportRequest:
    if not start or not end:
        raise ValidationError("Debes especificar las fechas start y end (YYYY-MM-DD)")
    try:
        d_start = date.fromisoformat(start.strip()[:10])
        d_end = date.fromisoformat(end.strip()[:10])
    except ValueError:
        raise ValidationError("Fechas inválidas")
    if d_end < d_start:
        raise ValidationError("Fechas inválidas")
    scope_v = (scope or "salidas").strip().lower()
    if scope_v not in SCOPES:
        raise ValidationError("El parámetro scope debe ser salidas, entradas o todo.")
    fmt_v = (fmt or "xls").strip().lower()
    if fmt_v not in FORMATS:
        raise ValidationError("El parámetro format debe ser xls o xlsx.")
    return ReportRequest(start=d_start, end=d_end, scope=scope_v, fmt=fmt_v)


def _bounds(req: ReportRequest) -> tuple[datetime, datetime]:
    # Fin inclusivo: todo el día ``end``
    return datetime.combine(req.start, time.min), datetime.combine(req.end + timedelta(days=1), time.min)


async def fetch_salida_rows(db: AsyncSession, req: ReportRequest) -> list[SalidaRow]:
    lo, hi = _bounds(req)
    stmt = (
        select(Salida)
        .options(
            selectinload(Salida.vendedor),
            selectinload(Salida.detalles).selectinload(DetalleSalida.producto),
        )
        .where(Salida.fecha_salida >= lo, Salida.fecha_salida < hi)
        .order_by(Salida.fecha_salida, Salida.id)
    )
    rows: list[SalidaRow] = []
    for s in (await db.execute(stmt)).scalars().all():
        items = sorted(
            (f"{d.producto.nombre if d.producto else 'Producto'} x{d.cantidad}" for d in s.detalles),
            key=str.lower,
        )
        rows.append(
            SalidaRow(
                ticket=s.ticket,
                fecha=s.fecha_salida,
                vendedor=(s.vendedor.nombre_completo if s.vendedor else "") or "Sin vendedor",
                productos=", ".join(items) or "Sin productos",
                estado=s.estado or "",
                tipo_venta=s.tipo_venta or "",
                total=Decimal(str(s.total or 0)),
            )
        )
    return rows


async def fetch_entrada_rows(db: AsyncSession, req: ReportRequest) -> list[EntradaRow]:
    lo, hi = _bounds(req)
    stmt = (
        select(StockMovement)
        .options(selectinload(StockMovement.producto), selectinload(StockMovement.usuario))
        .where(
            StockMovement.tipo == "entrada",
            StockMovement.fecha_movimiento >= lo,
            StockMovement.fecha_movimiento < hi,
        )
        .order_by(StockMovement.fecha_movimiento, StockMovement.id)
    )
    return [
        EntradaRow(
            producto=m.producto.nombre if m.producto else "Sin producto",
            fecha=m.fecha_movimiento,
            cantidad=int(m.cantidad),
            stock_anterior=int(m.stock_anterior),
            stock_nuevo=int(m.stock_nuevo),
            usuario=(m.usuario.nombre_completo if m.usuario else "") or "Sistema",
            observacion=m.observacion,
        )
        for m in (await db.execute(stmt)).scalars().all()
    ]


def format_currency(value: Decimal | float) -> str:
    return f"RD$ {float(value):,.2f}"


def _fecha(value: datetime) -> str:
    return value.strftime("%d/%m/%Y %H:%M")


# --- SpreadsheetML (Excel 2003 XML) ---


def _cell(value, kind: str = "String", merge: int = 0) -> str:
    attr = f' ss:MergeAcross="{merge}"' if merge else ""
    return f'<Cell{attr}><Data ss:Type="{kind}">{escape(str(value))}</Data></Cell>'


def _row(cells: list[str]) -> str:
    return "<Row>" + "".join(cells) + "</Row>"


def _worksheet(name: str, title: str, header: list[str], body: list[str], total: str) -> str:
    rows = [_row([_cell(title, merge=len(header) - 1)]), _row([_cell(h) for h in header])]
    rows.extend(body)
    rows.append(total)
    return f'<Worksheet ss:Name="{escape(name)}"><Table>' + "\n".join(rows) + "</Table></Worksheet>"


def salidas_worksheet_xml(rows: list[SalidaRow], label: str) -> str:
    body = [
        _row([
            _cell(r.ticket),
            _cell(_fecha(r.fecha)),
            _cell(r.vendedor),
            _cell(r.productos),
            _cell(r.estado),
            _cell(r.tipo_venta),
            _cell(format_currency(r.total)),
        ])
        for r in rows
    ] or [_row([_cell("Sin salidas registradas para este rango.", merge=6)])]
    total = sum((r.total for r in rows), Decimal("0"))
    total_row = _row([_cell("Total ventas"), _cell(format_currency(total), merge=5)])
    return _worksheet("Salidas", f"Reporte de salidas ({label})", SALIDAS_HEADER, body, total_row)


def entradas_worksheet_xml(rows: list[EntradaRow], label: str) -> str:
    body = [
        _row([
            _cell(r.producto),
            _cell(_fecha(r.fecha)),
            _cell(r.cantidad, "Number"),
            _cell(r.stock_anterior, "Number"),
            _cell(r.stock_nuevo, "Number"),
            _cell(r.usuario),
            _cell(r.observacion or "-"),
        ])
        for r in rows
    ] or [_row([_cell("Sin entradas registradas para este rango.", merge=6)])]
    total_row = _row([_cell("Total unidades recibidas"), _cell(sum(r.cantidad for r in rows), "Number", merge=5)])
    return _worksheet("Entradas", f"Reporte de entradas ({label})", ENTRADAS_HEADER, body, total_row)


def build_spreadsheetml(worksheets: list[str]) -> bytes:
    doc = (
        '<?xml version="1.0"?>\n'
        '<?mso-application progid="Excel.Sheet"?>\n'
        '<Workbook xmlns="urn:schemas-microsoft-com:office:spreadsheet"\n'
        ' xmlns:o="urn:schemas-microsoft-com:office:office"\n'
        ' xmlns:x="urn:schemas-microsoft-com:office:excel"\n'
        ' xmlns:ss="urn:schemas-microsoft-com:office:spreadsheet">\n'
        + "\n".join(worksheets)
        + "\n</Workbook>"
    )
    return doc.encode("utf-8")


# --- xlsx (openpyxl) ---


def _style_header(ws, row_idx: int) -> None:
    # Encabezado: fondo oscuro, texto claro y negrita, centrado
    header_fill = PatternFill(start_color="FF333333", end_color="FF333333", fill_type="solid")
    header_font = Font(bold=True, color="FFFFFFFF")
    header_alignment = Alignment(horizontal="center")
    for cell in ws[row_idx]:
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = header_alignment


def build_xlsx(
    req: ReportRequest,
    salidas: Optional[list[SalidaRow]],
    entradas: Optional[list[EntradaRow]],
) -> bytes:
    wb = Workbook()
    wb.remove(wb.active)
    if salidas is not None:
        ws = wb.create_sheet("Salidas")
        ws.append([f"Reporte de salidas ({req.range_label})"])
        ws.cell(row=1, column=1).font = Font(bold=True)
        ws.append(SALIDAS_HEADER)
        _style_header(ws, 2)
        for r in salidas:
            ws.append([r.ticket, r.fecha, r.vendedor, r.productos, r.estado, r.tipo_venta, float(r.total)])
            ws.cell(row=ws.max_row, column=2).number_format = "DD/MM/YYYY HH:MM"
            ws.cell(row=ws.max_row, column=7).number_format = '"RD$" #,##0.00'
        ws.append(["Total ventas", None, None, None, None, None, float(sum((r.total for r in salidas), Decimal("0")))])
        ws.cell(row=ws.max_row, column=1).font = Font(bold=True)
        ws.cell(row=ws.max_row, column=7).number_format = '"RD$" #,##0.00'
        ws.column_dimensions["A"].width = 26
        ws.column_dimensions["D"].width = 48
    if entradas is not None:
        ws = wb.create_sheet("Entradas")
        ws.append([f"Reporte de entradas ({req.range_label})"])
        ws.cell(row=1, column=1).font = Font(bold=True)
        ws.append(ENTRADAS_HEADER)
        _style_header(ws, 2)
        for r in entradas:
            ws.append([r.producto, r.fecha, r.cantidad, r.stock_anterior, r.stock_nuevo, r.usuario, r.observacion or ""])
            ws.cell(row=ws.max_row, column=2).number_format = "DD/MM/YYYY HH:MM"
        ws.append(["Total unidades recibidas", None, sum(r.cantidad for r in entradas)])
        ws.cell(row=ws.max_row, column=1).font = Font(bold=True)
        ws.column_dimensions["A"].width = 32
        ws.column_dimensions["G"].width = 36
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


async def build_report(db: AsyncSession, req: ReportRequest) -> ReportFile:
    """Genera el archivo; 400 si el alcance pedido no tiene filas en el rango."""
    salidas: Optional[list[SalidaRow]] = None
    entradas: Optional[list[EntradaRow]] = None
    if req.scope in ("salidas", "todo"):
        salidas = await fetch_salida_rows(db, req)
        if req.scope == "salidas" and not salidas:
            raise ValidationError("No se encontraron salidas en el rango seleccionado.")
    if req.scope in ("entradas", "todo"):
        entradas = await fetch_entrada_rows(db, req)
        if req.scope == "entradas" and not entradas:
            raise ValidationError("No se encontraron entradas en el rango seleccionado.")
    if req.scope == "todo" and not salidas and not entradas:
        raise ValidationError("No se encontraron movimientos en el rango seleccionado.")

    if req.fmt == "xlsx":
        return ReportFile(req.filename, build_xlsx(req, salidas, entradas), XLSX_MEDIA_TYPE)
    sheets: list[str] = []
    if salidas is not None:
        sheets.append(salidas_worksheet_xml(salidas, req.range_label))
    if entradas is not None:
        sheets.append(entradas_worksheet_xml(entradas, req.range_label))
    return ReportFile(req.filename, build_spreadsheetml(sheets), XLS_MEDIA_TYPE)
