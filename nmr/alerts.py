from __future__ import annotations

import smtplib
from email.mime.text import MIMEText

from .settings import Settings, settings


def _smtp_ready(cfg: Settings) -> bool:
    return cfg.enable_email and all(
        [cfg.smtp_host, cfg.smtp_port, cfg.smtp_user, cfg.smtp_password, cfg.email_from, cfg.email_to]
    )


def send_email(subject: str, body: str, cfg: Settings | None = None) -> bool:
    """Send a plain-text email when NMR_ENABLE_EMAIL and the NMR_SMTP_* settings are set.

    Returns False when mail is disabled or delivery failed.
    """
    cfg = cfg or settings
    if not _smtp_ready(cfg):
        return False

    msg = MIMEText(body, "plain")
    msg["From"] = cfg.email_from
    msg["To"] = cfg.email_to
    msg["Subject"] = subject
    try:
        with smtplib.SMTP(cfg.smtp_host, cfg.smtp_port, timeout=10) as server:
            server.starttls()
            server.login(cfg.smtp_user, cfg.smtp_password)
            server.sendmail(cfg.email_from, [cfg.email_to], msg.as_string())
        return True
    except (smtplib.SMTPException, OSError):
        return False


def notify_apply_state(target: str, ok: bool, detail: str, addresses: tuple[str, ...] = ()) -> bool:
    """Mail a one-shot notice when applying to ``target`` starts failing or recovers."""
    subject = f"{'RECOVERED' if ok else 'FAILING'}: {target}"
    body = (
        f"Target: {target}\n"
        f"Status: {'OK' if ok else 'APPLY FAILED'}\n"
        f"Detail: {detail}\n"
        f"Members ({len(addresses)}): {', '.join(addresses) or '-'}\n"
    )
    return send_email(subject, body)
