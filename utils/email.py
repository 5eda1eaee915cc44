"""
Outgoing email: Jinja2 templates under templates/email, bleach-cleaned HTML
fragments, SMTP delivery (Resend's SMTP relay by default).
"""
import logging
import os
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Dict, Optional

import bleach
from bleach.css_sanitizer import CSSSanitizer
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from utils.config import clean_env_value

logger = logging.getLogger("backend.email")

SMTP_TIMEOUT_SECONDS = 15
PLAIN_TEXT_FALLBACK = "This message is HTML. Open it in an HTML-capable mail client to read it."

_css_sanitizer = CSSSanitizer(
    allowed_css_properties=[
        "color", "background-color", "font-size", "font-weight", "text-align",
        "margin", "padding", "border", "border-bottom", "border-radius",
        "vertical-align", "width", "max-width", "word-break",
    ],
)

# Enough markup for the submission table and simple paragraphs
ALLOWED_TAGS = ["a", "p", "br", "strong", "em", "b", "i", "ul", "ol", "li", "div", "span", "table", "tbody", "tr", "td", "th"]
ALLOWED_ATTRIBUTES = {
    "*": ["style"],
    "a": ["href", "title"],
    "table": ["cellpadding", "cellspacing", "style"],
    "td": ["colspan", "valign", "style"],
    "th": ["colspan", "valign", "style"],
}


def _template_dirs():
    dirs = [str(Path(__file__).resolve().parents[1] / "templates" / "email")]
    extra = clean_env_value(os.getenv("EMAIL_TEMPLATE_DIR"))
    if extra:
        dirs.append(extra)
    return dirs


_jinja = Environment(loader=FileSystemLoader(_template_dirs()), autoescape=select_autoescape(["html", "xml"]))


def sanitize_url(url: str) -> str:
    """Only absolute http(s) links survive."""
    u = str(url or "").strip()
    return u if u.lower().startswith(("http://", "https://")) else ""


def sanitize_html(fragment: str) -> str:
    if not fragment:
        return ""
    return bleach.clean(
        str(fragment),
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        protocols=["http", "https", "mailto"],
        strip=True,
        css_sanitizer=_css_sanitizer,
    )


def render_email(template_name: str, context: Dict[str, Any]) -> str:
    """Render a template; `content_html` and `cta_url` are cleaned first."""
    try:
        template = _jinja.get_template(template_name)
    except TemplateNotFound:
        logger.error("Email template %s not found in %s", template_name, _template_dirs())
        raise
    values: Dict[str, Any] = {"year": datetime.now(timezone.utc).year, **(context or {})}
    if "content_html" in values:
        values["content_html"] = sanitize_html(values["content_html"])
    if "cta_url" in values:
        values["cta_url"] = sanitize_url(values["cta_url"])
    return template.render(**values)


@dataclass(frozen=True)
class SmtpSettings:
    host: str
    port: int
    username: str
    password: str
    sender: str

    @classmethod
    def from_env(cls) -> "SmtpSettings":
        try:
            port = int(clean_env_value(os.getenv("SMTP_PORT")) or 587)
        except ValueError:
            port = 587
        return cls(
            host=clean_env_value(os.getenv("SMTP_HOST")) or "smtp.resend.com",
            port=port,
            username=clean_env_value(os.getenv("SMTP_USER")) or "resend",
            password=clean_env_value(os.getenv("SMTP_PASSWORD")) or clean_env_value(os.getenv("RESEND_API_KEY")),
            sender=clean_env_value(os.getenv("SMTP_FROM")) or "no-reply@formdrop.app",
        )


def send_email_html(to_email: str, subject: str, html_body: str, from_addr: Optional[str] = None) -> None:
    """Blocking SMTP send; STARTTLS on 587, implicit TLS on 465.

    Raises RuntimeError when SMTP is unconfigured or the server refuses.
    """
    smtp = SmtpSettings.from_env()
    if not smtp.password:
        raise RuntimeError("Email is not configured: set SMTP_PASSWORD or RESEND_API_KEY")

    msg = EmailMessage()
    msg["From"] = (from_addr or "").strip() or smtp.sender
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(PLAIN_TEXT_FALLBACK)
    msg.add_alternative(html_body, subtype="html")

    context = ssl.create_default_context()
    try:
        if smtp.port == 465:
            with smtplib.SMTP_SSL(smtp.host, smtp.port, context=context, timeout=SMTP_TIMEOUT_SECONDS) as server:
                server.login(smtp.username, smtp.password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(smtp.host, smtp.port, timeout=SMTP_TIMEOUT_SECONDS) as server:
                server.starttls(context=context)
                server.login(smtp.username, smtp.password)
                server.send_message(msg)
    except smtplib.SMTPResponseException as e:
        logger.warning("SMTP %s refused message to=%s code=%s", smtp.host, to_email, e.smtp_code)
        raise RuntimeError(f"SMTP server refused the message ({e.smtp_code})") from e
    except (smtplib.SMTPException, OSError) as e:
        raise RuntimeError(f"SMTP delivery failed: {e}") from e
    logger.debug("SMTP send ok host=%s to=%s", smtp.host, to_email)
