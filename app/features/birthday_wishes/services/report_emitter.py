"""
End-of-run summary for the birthday scan.

The summary is always logged and, when SMTP is configured, emailed to
REPORT_RECIPIENTS. Delivery is best-effort: failures are logged and never
feed back into the scan's counts.
"""

import asyncio
import smtplib
from dataclasses import dataclass
from datetime import date
from email.message import EmailMessage

from app.config import Settings
from app.features.birthday_wishes.domain import ScanReport
from app.features.birthday_wishes.services.date_service import format_report_date
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SMTP_TIMEOUT_SECONDS = 15


@dataclass(frozen=True, slots=True)
class ReportSummary:
    subject: str
    body: str


def build_report_summary(report: ScanReport, duration_seconds: float, target_date: date) -> ReportSummary:
    report_date = format_report_date(target_date)
    subject = f"Birthday wish SMS service report for {report_date}"
    body = (
        f"Birthday wish SMS service report for {report_date} is completed in "
        f"{round(duration_seconds)} seconds with below details:\n"
        f"  Total birthday users: {report.total}\n"
        f"  Messages sent successfully: {report.succeeded}\n"
        f"  Messages failed: {report.failed}."
    )
    return ReportSummary(subject=subject, body=body)


class SmtpEmailChannel:
    """Plain-text email over SMTP."""

    def __init__(
        self,
        host: str | None,
        port: int = 587,
        sender: str | None = None,
        user: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.user = user
        self.password = password or ""
        self.use_tls = use_tls

    @property
    def configured(self) -> bool:
        return bool(self.host and self.sender)

    def _send_sync(self, recipients: list[str], summary: ReportSummary) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = ", ".join(recipients)
        message["Subject"] = summary.subject
        message.set_content(summary.body)

        with smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS) as smtp_client:
            if self.use_tls:
                smtp_client.starttls()
            if self.user:
                smtp_client.login(self.user, self.password)
            smtp_client.send_message(message)

    async def send(self, recipients: list[str], summary: ReportSummary) -> None:
        await asyncio.to_thread(self._send_sync, recipients, summary)


class ReportEmitter:
    """Logs the run summary and mails it to the configured recipients."""

    def __init__(self, channel: SmtpEmailChannel | None = None, recipients: list[str] | None = None):
        self.channel = channel
        self.recipients = recipients or []

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReportEmitter":
        channel = SmtpEmailChannel(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            sender=settings.SMTP_FROM,
            user=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
        )
        return cls(channel=channel, recipients=settings.report_recipients())

    async def emit(self, report: ScanReport, duration_seconds: float, target_date: date) -> None:
        summary = build_report_summary(report, duration_seconds, target_date)

        logger.info(
            summary.body,
            target_date=target_date.isoformat(),
            duration_seconds=round(duration_seconds, 2),
            total=report.total,
            succeeded=report.succeeded,
            failed=report.failed,
        )

        if not self.channel or not self.channel.configured:
            logger.debug("Report email not configured, summary logged only")
            return
        if not self.recipients:
            logger.info("Report email skipped - no recipients configured")
            return

        try:
            await self.channel.send(self.recipients, summary)
            logger.info("Report email sent", recipient_count=len(self.recipients))
        except Exception as e:
            logger.error(
                "Report email failed",
                error=str(e),
                error_type=type(e).__name__,
                recipient_count=len(self.recipients),
            )
