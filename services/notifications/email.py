#!/usr/bin/env python
# NG-HEADER: Nombre de archivo: email.py
# NG-HEADER: Ubicación: services/notifications/email.py
# NG-HEADER: Descripción: Envío de correos de notificación de salidas vía SMTP.
# NG-HEADER: Lineamientos: Ver AGENTS.md

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass, field
from datetime import datetime
from email.message import EmailMessage
from html import escape
from typing import Optional, Sequence

from inventario_core.config import Settings, settings

logger = logging.getLogger("inventario.notifications")


@dataclass
class SaleNotificationLine:
    nombre: str
    cantidad: int
    precio_unitario: float
    subtotal: float


@dataclass
class SaleNotification:
    """Resumen de una salida para avisar a los administradores."""

    ticket: str
    total: float
    estado: str
    tipo_venta: str
    tipo_salida: str
    vendedor: str
    fecha: datetime
    detalles: list[SaleNotificationLine] = field(default_factory=list)


def _fmt_money(value: float) -> str:
    return f"RD$ {value:,.2f}"


def build_sale_email_html(data: SaleNotification, app_url: str) -> str:
    rows = "".join(
        "<tr>"
        f"<td style=\"padding:8px;border-bottom:1px solid #e2e8f0;\">{escape(d.nombre)}</td>"
        f"<td style=\"padding:8px;border-bottom:1px solid #e2e8f0;text-align:center;\">{d.cantidad}</td>"
        f"<td style=\"padding:8px;border-bottom:1px solid #e2e8f0;text-align:right;\">{_fmt_money(d.precio_unitario)}</td>"
        f"<td style=\"padding:8px;border-bottom:1px solid #e2e8f0;text-align:right;\">{_fmt_money(d.subtotal)}</td>"
        "</tr>"
        for d in data.detalles
    )
    portal = escape(app_url.rstrip("/") + "/salidas")
    return f"""
    <table width="100%" cellpadding="0" cellspacing="0" style="font-family: Arial, sans-serif; background-color:#f5f7fb; padding:24px;">
      <tr><td>
        <table width="600" cellpadding="0" cellspacing="0" style="margin:0 auto; background-color:#ffffff; border-radius:16px;">
          <tr><td style="background-color:#0b1540; padding:24px;">
            <h1 style="margin:0; color:#ffffff; font-size:22px;">Nueva salida registrada</h1>
            <p style="margin:8px 0 0; color:#60a5fa;">Ticket {escape(data.ticket)}</p>
          </td></tr>
          <tr><td style="padding:24px; color:#0f172a; font-size:14px;">
            <p><strong>Vendedor:</strong> {escape(data.vendedor)}</p>
            <p><strong>Fecha:</strong> {data.fecha.strftime("%Y-%m-%d %H:%M")}</p>
            <p><strong>Estado:</strong> {escape(data.estado)}</p>
            <p><strong>Tipo de venta:</strong> {escape(data.tipo_venta)} ({escape(data.tipo_salida)})</p>
            <table width="100%" cellpadding="0" cellspacing="0" style="margin-top:16px;">
              <tr>
                <th style="text-align:left;padding:8px;">Producto</th>
                <th style="padding:8px;">Cantidad</th>
                <th style="text-align:right;padding:8px;">Precio</th>
                <th style="text-align:right;padding:8px;">Subtotal</th>
              </tr>
              {rows}
            </table>
            <p style="text-align:right; font-size:16px; margin-top:16px;"><strong>Total:</strong> {_fmt_money(data.total)}</p>
            <p style="text-align:center; margin-top:24px;"><a href="{portal}">Ver salidas</a></p>
          </td></tr>
        </table>
      </td></tr>
    </table>
    """


def _deliver(msg: EmailMessage, cfg: Settings) -> None:
    """Envío bloqueante; se ejecuta en un hilo aparte."""
    if cfg.smtp_secure:
        ctx = ssl.create_default_context()
        with smtplib.SMTP_SSL(cfg.smtp_host, cfg.smtp_port, timeout=cfg.smtp_timeout, context=ctx) as smtp:
            smtp.login(cfg.smtp_user, cfg.smtp_pass)
            smtp.send_message(msg)
        return
    with smtplib.SMTP(cfg.smtp_host, cfg.smtp_port, timeout=cfg.smtp_timeout) as smtp:
        smtp.ehlo()
        if smtp.has_extn("starttls"):
            smtp.starttls(context=ssl.create_default_context())
            smtp.ehlo()
        smtp.login(cfg.smtp_user, cfg.smtp_pass)
        smtp.send_message(msg)


async def send_sale_notification_email(
    recipients: Sequence[str],
    data: SaleNotification,
    *,
    cfg: Optional[Settings] = None,
) -> bool:
    """Envía el resumen de la salida a ``recipients``.

    - Si SMTP no está configurado (host, usuario y contraseña) se omite.
    - No levanta excepciones: True si el servidor aceptó el mensaje, False si omitió o falló.
    """
    cfg = cfg or settings
    to = [r for r in recipients if r]
    if not cfg.email_enabled or not cfg.smtp_from:
        logger.info("Correo no configurado, omitiendo notificación de la salida %s", data.ticket)
        return False
    if not to:
        logger.debug("Sin destinatarios para la salida %s", data.ticket)
        return False

    msg = EmailMessage()
    msg["Subject"] = f"Nueva salida {data.ticket} por {_fmt_money(data.total)}"
    msg["From"] = cfg.smtp_from
    msg["To"] = ", ".join(to)
    msg.set_content(
        f"Se registró la salida {data.ticket} ({data.estado}) por {_fmt_money(data.total)}. "
        f"Vendedor: {data.vendedor}."
    )
    msg.add_alternative(build_sale_email_html(data, cfg.app_url), subtype="html")
    try:
        await asyncio.to_thread(_deliver, msg, cfg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("✗ No se pudo enviar la notificación de la salida %s: %s: %s", data.ticket, type(e).__name__, e)
        return False
    logger.info("Notificación de la salida %s enviada a %d destinatarios", data.ticket, len(to))
    return True
