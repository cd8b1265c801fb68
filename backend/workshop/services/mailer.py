from __future__ import annotations
"""Outbound email over SMTP with bounded retries.

`EmailService.send` never raises for delivery problems: it returns a
DeliveryResult so callers can record the outcome. With MAIL_SUPPRESS_SEND the
message is appended to app.extensions['mail_outbox'] instead of being sent.
"""
import logging
import smtplib
import ssl
import time
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any, Dict, List, Optional
from flask import current_app, render_template

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    success: bool
    error: Optional[str] = None
    attempts: int = 0


def format_clp(amount: Optional[int]) -> str:
    if amount is None:
        return '-'
    return f"{int(amount):,}".replace(',', '.')


def workshop_info() -> Dict[str, str]:
    cfg = current_app.config
    return {
        'name': cfg.get('WORKSHOP_NAME'),
        'email': cfg.get('WORKSHOP_EMAIL'),
        'phone': cfg.get('WORKSHOP_PHONE'),
        'address': cfg.get('WORKSHOP_ADDRESS'),
    }


def outbox() -> List[Dict[str, Any]]:
    return current_app.extensions.setdefault('mail_outbox', [])


class EmailService:
    def _build_message(self, to: str, subject: str, html: str) -> MIMEMultipart:
        info = workshop_info()
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = formataddr((info['name'], current_app.config.get('MAIL_DEFAULT_SENDER')))
        msg['To'] = to
        msg.attach(MIMEText(html, 'html', 'utf-8'))
        return msg

    def _deliver(self, msg: MIMEMultipart, to: str):
        cfg = current_app.config
        if cfg.get('MAIL_SUPPRESS_SEND'):
            outbox().append({'to': to, 'subject': msg['Subject'], 'html': msg.get_payload()[0].get_payload(decode=True).decode('utf-8')})
            return
        host = cfg.get('MAIL_SERVER')
        port = int(cfg.get('MAIL_PORT') or 587)
        timeout = cfg.get('MAIL_TIMEOUT', 10)
        if port == 465:
            server = smtplib.SMTP_SSL(host, port, context=ssl.create_default_context(), timeout=timeout)
        else:
            server = smtplib.SMTP(host, port, timeout=timeout)
        try:
            if port != 465 and cfg.get('MAIL_USE_TLS'):
                server.starttls(context=ssl.create_default_context())
            if cfg.get('MAIL_USERNAME'):
                server.login(cfg['MAIL_USERNAME'], cfg.get('MAIL_PASSWORD') or '')
            server.sendmail(cfg.get('MAIL_DEFAULT_SENDER'), [to], msg.as_string())
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                pass

    def send(self, to: str, subject: str, html: str) -> DeliveryResult:
        """Try up to EMAIL_MAX_RETRIES times, sleeping EMAIL_RETRY_DELAYS[i] before attempt i."""
        cfg = current_app.config
        max_retries = max(1, int(cfg.get('EMAIL_MAX_RETRIES', 3)))
        delays = cfg.get('EMAIL_RETRY_DELAYS') or [0]
        msg = self._build_message(to, subject, html)
        last_error = None
        for attempt in range(max_retries):
            delay = delays[attempt] if attempt < len(delays) else delays[-1]
            if delay > 0:
                time.sleep(delay)
            try:
                self._deliver(msg, to)
                logger.info('Email sent to %s (%s) on attempt %s', to, subject, attempt + 1)
                return DeliveryResult(success=True, attempts=attempt + 1)
            except (smtplib.SMTPException, OSError) as e:
                last_error = str(e) or e.__class__.__name__
                logger.warning('Email to %s failed on attempt %s/%s: %s', to, attempt + 1, max_retries, last_error)
        logger.error('Email to %s gave up after %s attempts', to, max_retries)
        return DeliveryResult(success=False, error=last_error, attempts=max_retries)

    def send_quote_email(self, quote, client, approve_token: str, reject_token: str) -> DeliveryResult:
        base = current_app.config.get('PUBLIC_BASE_URL', '').rstrip('/')
        info = workshop_info()
        html = render_template(
            'emails/quote.html',
            quote=quote,
            client=client,
            workshop=info,
            approve_url=f"{base}/api/quotes/{quote.id}/approve?token={approve_token}",
            reject_url=f"{base}/api/quotes/{quote.id}/reject?token={reject_token}",
            estimated_cost=format_clp(quote.estimated_cost),
        )
        return self.send(client.email, f"Presupuesto {quote.number} - {info['name']}", html)

    def send_ready_notification(self, order, client) -> DeliveryResult:
        html = render_template(
            'emails/order_ready.html',
            order=order,
            client=client,
            workshop=workshop_info(),
            final_cost=format_clp(order.final_cost) if order.final_cost else None,
        )
        return self.send(client.email, f"¡Su vehículo está listo! - Orden {order.number}", html)


mailer = EmailService()
