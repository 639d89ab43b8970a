"""Email notifications for finished exports."""
from __future__ import annotations

import asyncio
import html
import logging
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import make_msgid
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol

from scanexport.core.errors import ConfigurationError, SinkFailureError
from scanexport.core.models import (
    EMAIL_PATTERN,
    ArtifactRef,
    EmailReceipt,
    ExportFormat,
    ExportItem,
    coerce_items,
)
from scanexport.core.utils import ExportSettings
from scanexport.export.formatters import parse_timestamp

logger = logging.getLogger(__name__)


class EmailSink(Protocol):
    async def send(
        self,
        artifact: Optional[ArtifactRef],
        address: str,
        fmt: ExportFormat,
        item_count: int,
        subject: Optional[str] = None,
    ) -> EmailReceipt:
        ...


def is_valid_email(address: str | None) -> bool:
    return bool(address and EMAIL_PATTERN.match(address.strip()))


def _format_label(fmt: ExportFormat | str) -> str:
    value = fmt.value if isinstance(fmt, ExportFormat) else str(fmt)
    return value.upper()


def build_subject(fmt: ExportFormat | str) -> str:
    return f"Scan Export - {_format_label(fmt)}"


def file_size_kb(artifact: Optional[ArtifactRef]) -> Optional[float]:
    if artifact is None or artifact.size is None:
        return None
    return round(artifact.size / 1024, 1)


def render_text_body(
    fmt: ExportFormat | str,
    item_count: int,
    file_size: Optional[float] = None,
    generated_at: Optional[datetime] = None,
) -> str:
    """Plain-text body announcing a finished export."""

    generated_at = generated_at or datetime.now()
    size = "N/A" if file_size is None else file_size
    return "\n".join(
        [
            "Hello,",
            "",
            "Your scan export is ready!",
            "",
            "Export Details:",
            f"- Format: {_format_label(fmt)}",
            f"- Items: {item_count}",
            f"- Generated: {generated_at:%Y-%m-%d %H:%M:%S}",
            f"- File Size: {size} KB",
            "",
            "Best regards,",
            "Scan Export",
        ]
    )


def render_html_body(
    fmt: ExportFormat | str,
    item_count: int,
    file_size: Optional[float] = None,
    generated_at: Optional[datetime] = None,
) -> str:
    """HTML variant of :func:`render_text_body`; the size row is omitted when unknown."""

    generated_at = generated_at or datetime.now()
    rows = [
        ("Format", _format_label(fmt)),
        ("Items", str(item_count)),
        ("Generated", f"{generated_at:%Y-%m-%d %H:%M:%S}"),
    ]
    if file_size is not None:
        rows.append(("File Size", f"{file_size} KB"))
    details = "\n".join(
        f'    <div class="detail-item"><span class="label">{html.escape(label)}:</span> {html.escape(value)}</div>'
        for label, value in rows
    )
    return (
        "<!DOCTYPE html>\n<html>\n<body>\n"
        '  <div class="header">Scan Export Ready</div>\n'
        "  <p>Hello,</p>\n"
        "  <p>Your scan export is ready for download.</p>\n"
        '  <div class="details">\n'
        f"{details}\n"
        "  </div>\n"
        '  <div class="footer">Best regards,<br>Scan Export</div>\n'
        "</body>\n</html>"
    )


def build_export_summary(items: Iterable[ExportItem | Mapping[str, Any]], fmt: ExportFormat | str) -> Dict[str, Any]:
    """Counts by type, product coverage and the covered date range."""

    records = coerce_items(items)
    by_type: Dict[str, int] = {}
    timestamps = []
    for record in records:
        by_type[record.type or "unknown"] = by_type.get(record.type or "unknown", 0) + 1
        try:
            parsed = parse_timestamp(record.timestamp)
        except ValueError:
            parsed = None
        if parsed is not None:
            timestamps.append(parsed)

    return {
        "total_items": len(records),
        "by_type": by_type,
        "with_product_info": sum(1 for record in records if record.product),
        "date_range": {
            "start": min(timestamps).isoformat() if timestamps else None,
            "end": max(timestamps).isoformat() if timestamps else None,
        },
        "file_format": ExportFormat.parse(fmt).value,
    }


class SmtpEmailSink:
    """Send export notifications with the artifact attached over SMTP."""

    def __init__(
        self,
        host: str,
        from_address: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: int = 30,
    ) -> None:
        self.host = host
        self.from_address = from_address
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: ExportSettings) -> "SmtpEmailSink":
        return cls(
            host=settings.smtp_host,
            from_address=settings.email_from_address,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
        )

    def validate_configuration(self) -> None:
        missing = [
            name
            for name, value in (("SMTP_HOST", self.host), ("EMAIL_FROM_ADDRESS", self.from_address))
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Email service not configured. Missing: {', '.join(missing)}")

    def build_message(
        self,
        artifact: Optional[ArtifactRef],
        address: str,
        fmt: ExportFormat,
        item_count: int,
        subject: Optional[str] = None,
    ) -> EmailMessage:
        size = file_size_kb(artifact)
        message = EmailMessage()
        message["Subject"] = subject or build_subject(fmt)
        message["From"] = self.from_address
        message["To"] = address
        message["Message-ID"] = make_msgid()
        message.set_content(render_text_body(fmt, item_count, size))
        message.add_alternative(render_html_body(fmt, item_count, size), subtype="html")

        if artifact is not None and Path(artifact.uri).is_file():
            maintype, _, subtype = artifact.mime_type.partition("/")
            message.add_attachment(
                Path(artifact.uri).read_bytes(),
                maintype=maintype or "application",
                subtype=subtype or "octet-stream",
                filename=Path(artifact.uri).name,
            )
        return message

    async def send(
        self,
        artifact: Optional[ArtifactRef],
        address: str,
        fmt: ExportFormat,
        item_count: int,
        subject: Optional[str] = None,
    ) -> EmailReceipt:
        self.validate_configuration()
        if not is_valid_email(address):
            raise ConfigurationError(f"Invalid email address: {address}")
        message = self.build_message(artifact, address, fmt, item_count, subject)
        await asyncio.to_thread(self._deliver, message)
        logger.info("Sent %s export email to %s", _format_label(fmt), address)
        return EmailReceipt(
            success=True,
            message_id=str(message["Message-ID"]),
            sent_at=datetime.now(timezone.utc).isoformat(),
        )

    def _deliver(self, message: EmailMessage) -> None:
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise SinkFailureError(f"Failed to send email: {exc}") from exc
