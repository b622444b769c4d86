"""
Post-payment access email carrying the one-time login link.
Sent through Resend. Unlike receipts this email is the user's only way in,
so every failure raises UpstreamFailure instead of being skipped.
"""
import asyncio
import html
import logging
from datetime import datetime
from typing import Optional

import resend

from app.core.config import settings
from app.core.errors import UpstreamFailure

logger = logging.getLogger(__name__)


def render_access_email(magic_link: str, name: Optional[str] = None) -> str:
    greeting = f"Olá, {html.escape(name)}!" if name else "Olá!"
    link = html.escape(magic_link, quote=True)
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2 style="color: #25372c;">{greeting}</h2>
      <p>Sua assinatura do <strong>{html.escape(settings.app_name)}</strong> foi confirmada com sucesso!</p>
      <p>Clique no botão abaixo para acessar sua área de membro:</p>
      <p style="text-align: center; margin: 30px 0;">
        <a href="{link}" style="background-color: #25372c; color: #ffffff; padding: 15px 40px; text-decoration: none; border-radius: 6px;">Acessar Área de Membro</a>
      </p>
      <p style="color: #666666; font-size: 14px;">Se o botão não funcionar, copie e cole o link abaixo no seu navegador:</p>
      <p style="font-size: 12px; word-break: break-all;">{link}</p>
      <p style="color: #999999; font-size: 12px;">Este link é válido por 24 horas e pode ser usado apenas uma vez.</p>
      <p style="color: #999999; font-size: 11px;">© {datetime.utcnow().year} {html.escape(settings.app_name)}</p>
    </div>
    """.strip()


def _send(to_email: str, magic_link: str, name: Optional[str]) -> None:
    resend.api_key = settings.resend_api_key
    resend.Emails.send({
        "from": settings.access_from_email,
        "to": [to_email],
        "subject": "Sua assinatura foi confirmada! Acesse sua área de membro",
        "html": render_access_email(magic_link, name),
    })


async def send_access_email(to_email: str, magic_link: str, name: Optional[str] = None) -> None:
    if not settings.resend_api_key:
        logger.error("[Access email] RESEND_API_KEY not set; cannot deliver login link")
        raise UpstreamFailure("Failed to send email")

    try:
        # The Resend SDK is blocking; bound it like every other upstream call
        await asyncio.wait_for(
            asyncio.to_thread(_send, to_email, magic_link, name),
            timeout=settings.upstream_timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.error("[Access email] Resend timed out")
        raise UpstreamFailure("Failed to send email")
    except Exception as e:
        logger.error("[Access email] Resend failed: %s: %s", type(e).__name__, e)
        raise UpstreamFailure("Failed to send email")
    logger.info("[Access email] Login link email sent")
