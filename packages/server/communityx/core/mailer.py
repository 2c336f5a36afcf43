"""Transactional email (invites, welcome). Best-effort: failures are logged, never raised."""

from __future__ import annotations

from email.message import EmailMessage

import aiosmtplib
import structlog

from communityx.core.config import get_settings

log = structlog.get_logger()


async def send_email(to_email: str, subject: str, body_html: str) -> bool:
    """Send an email using configured SMTP settings. Returns whether it was sent."""
    settings = get_settings()
    if not settings.smtp_host:
        log.warning("email.skipped", reason="smtp_not_configured", subject=subject)
        return False

    msg = EmailMessage()
    msg["From"] = settings.email_from
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body_html, subtype="html")

    # STARTTLS on 587, implicit TLS on 465
    start_tls = settings.smtp_use_tls and settings.smtp_port == 587
    use_tls = settings.smtp_use_tls and settings.smtp_port == 465
    try:
        await aiosmtplib.send(
            msg,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username or None,
            password=settings.smtp_password or None,
            start_tls=start_tls,
            use_tls=use_tls,
        )
    except (aiosmtplib.SMTPException, OSError) as exc:
        log.error("email.failed", subject=subject, error=str(exc))
        return False

    log.info("email.sent", subject=subject)
    return True


async def send_org_invite(email: str, org_name: str, invite_link: str) -> bool:
    subject = f"You're invited to join {org_name} on CommunityX"
    body = f"""
    <html>
        <body>
            <p>Hello,</p>
            <p>You have been invited to join <strong>{org_name}</strong>.</p>
            <p><a href="{invite_link}">Accept the invitation</a></p>
            <p>This link expires in 7 days.</p>
        </body>
    </html>
    """
    return await send_email(email, subject, body)


async def send_welcome(email: str, name: str, app_url: str) -> bool:
    subject = "Welcome to CommunityX"
    body = f"""
    <html>
        <body>
            <p>Hi {name},</p>
            <p>Your account is ready. <a href="{app_url}">Sign in</a> to get started.</p>
        </body>
    </html>
    """
    return await send_email(email, subject, body)
