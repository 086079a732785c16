"""
Email Service for Garud Classes
===============================
Handles all transactional email:
- Welcome and class reminder emails from named templates
- Contact and enrollment notifications
- One-off composed messages from the admin console
- Bulk notifications to students

Every send returns a SendResult. Template, render and delivery problems are
classified and logged here and never raised to the caller. No retries are
attempted; retry policy belongs to the caller.
"""

import asyncio
import mimetypes
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import aiofiles
import aiosmtplib

from app.core.exceptions import RenderFailureError, TemplateNotFoundError
from app.core.logging_config import logger
from app.services.delivery_classifier import DeliveryClassifier, DeliveryErrorKind
from app.services.mail_channel import MailChannel
from app.services.template_registry import TemplateRegistry


class SendOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class SendResult:
    """Outcome of one dispatch attempt"""
    outcome: SendOutcome
    message_id: Optional[str] = None
    error_kind: Optional[DeliveryErrorKind] = None
    error_detail: Optional[str] = None
    remediation: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome == SendOutcome.SUCCESS

    @classmethod
    def sent(cls, message_id: str) -> "SendResult":
        return cls(outcome=SendOutcome.SUCCESS, message_id=message_id)

    @classmethod
    def failed(cls, kind: DeliveryErrorKind, detail: str,
               remediation: Optional[str] = None) -> "SendResult":
        return cls(outcome=SendOutcome.FAILURE, error_kind=kind,
                   error_detail=detail, remediation=remediation)

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "messageId": self.message_id}
        result = {
            "success": False,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "error": self.error_detail,
        }
        if self.remediation:
            result["remediation"] = self.remediation
        return result


@dataclass
class Attachment:
    """File attached to a message, given inline or by path reference"""
    filename: str
    content: Optional[bytes] = None
    path: Optional[Union[str, Path]] = None
    content_type: Optional[str] = None

    async def read(self) -> bytes:
        if self.content is not None:
            return self.content
        if self.path is None:
            raise ValueError(f"Attachment '{self.filename}' has neither content nor path")
        async with aiofiles.open(self.path, "rb") as f:
            return await f.read()

    def mime_parts(self) -> List[str]:
        content_type = self.content_type or mimetypes.guess_type(self.filename)[0] or "application/octet-stream"
        maintype, _, subtype = content_type.partition("/")
        return [maintype, subtype or "octet-stream"]


@dataclass
class BulkSendReport:
    """Per-recipient results of a bulk send"""
    sent: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.sent) + len(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalEmails": self.total,
            "sentEmails": self.sent,
            "failedEmails": self.failed,
            "sentCount": len(self.sent),
            "failedCount": len(self.failed),
        }


class EmailService:
    """Renders templates and submits messages to a pooled MailChannel"""

    def __init__(
        self,
        channel: MailChannel,
        templates: TemplateRegistry,
        from_address: str,
        from_name: str = "",
        send_timeout: Optional[float] = 60.0,
    ):
        self.channel = channel
        self.templates = templates
        self.from_address = from_address
        self.from_name = from_name
        self.send_timeout = send_timeout
        self._msgid_domain = from_address.rpartition("@")[2] or None

    @property
    def from_header(self) -> str:
        if self.from_name:
            return formataddr((self.from_name, self.from_address))
        return self.from_address

    async def verify(self) -> bool:
        """
        Check the relay is reachable and accepts our login.

        Meant to run in the background at startup: a failure is logged, not
        fatal, and later sends are still attempted.
        """
        try:
            await asyncio.wait_for(self.channel.verify(), self.send_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            failure = DeliveryClassifier.classify(e)
            if failure.kind == DeliveryErrorKind.AUTH_ERROR:
                logger.error(f"[Email] SMTP login failed: {failure.detail}. {failure.hint}")
            else:
                logger.error(f"[Email] Email service verification failed: {failure.detail}")
            return False

        logger.info("[Email] Email service is ready to send emails")
        return True

    async def send(
        self,
        recipient: str,
        subject: str,
        template_name: str,
        context: Optional[Dict[str, Any]] = None,
        attachments: Optional[Sequence[Attachment]] = None,
    ) -> SendResult:
        """Render a named template and send it"""
        try:
            html = await self.templates.render(template_name, context)
        except TemplateNotFoundError as e:
            logger.error(f"[Email] {e.message} - is EMAIL_TEMPLATES_DIR deployed correctly?")
            return SendResult.failed(DeliveryErrorKind.TEMPLATE_NOT_FOUND, e.message)
        except RenderFailureError as e:
            logger.error(f"[Email] {e.message}")
            return SendResult.failed(DeliveryErrorKind.RENDER_FAILURE, e.message)

        return await self._deliver(recipient, subject, html, attachments)

    async def send_raw(
        self,
        recipient: str,
        subject: str,
        html: str,
        attachments: Optional[Sequence[Attachment]] = None,
    ) -> SendResult:
        """Send caller-provided HTML, skipping template resolution"""
        return await self._deliver(recipient, subject, html, attachments)

    async def send_bulk(self, recipients: Sequence[str], subject: str, html: str) -> BulkSendReport:
        """Send the same message to many recipients; the channel pool bounds concurrency"""
        results = await asyncio.gather(*(self.send_raw(r, subject, html) for r in recipients))

        report = BulkSendReport()
        for recipient, result in zip(recipients, results):
            if result.success:
                report.sent.append({"email": recipient, "messageId": result.message_id})
            else:
                report.failed.append({"email": recipient, "error": result.error_detail,
                                      "errorKind": result.error_kind.value})

        logger.info(f"[Email] Bulk send complete: {len(report.sent)} success, {len(report.failed)} failed")
        return report

    def list_templates(self) -> List[Dict[str, Any]]:
        return self.templates.describe()

    async def close(self) -> None:
        await self.channel.close()

    async def _compose(self, recipient: str, subject: str, html: str,
                       attachments: Optional[Sequence[Attachment]]) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.from_header
        message["To"] = recipient
        message["Subject"] = subject
        message["Date"] = formatdate(localtime=True)
        message["Message-ID"] = make_msgid(domain=self._msgid_domain)
        message.set_content(html, subtype="html")

        for attachment in attachments or []:
            maintype, subtype = attachment.mime_parts()
            message.add_attachment(
                await attachment.read(),
                maintype=maintype,
                subtype=subtype,
                filename=attachment.filename,
            )
        return message

    async def _deliver(self, recipient: str, subject: str, html: str,
                       attachments: Optional[Sequence[Attachment]]) -> SendResult:
        try:
            message = await self._compose(recipient, subject, html, attachments)
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"[Email] Could not compose message to {recipient}: {e}")
            return SendResult.failed(DeliveryErrorKind.OTHER_ERROR, f"Could not compose message: {e}")

        try:
            message_id = await asyncio.wait_for(self.channel.send(message), self.send_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            failure = DeliveryClassifier.classify(e)
            if isinstance(e, asyncio.TimeoutError) and not isinstance(e, aiosmtplib.SMTPException):
                failure.detail = f"No completion from mail relay within {self.send_timeout}s"
            if failure.kind == DeliveryErrorKind.AUTH_ERROR:
                logger.error(f"[Email] Authentication error sending to {recipient}. {failure.hint}")
            logger.log_delivery(recipient, False, error_kind=failure.kind.value,
                                error_detail=failure.detail, smtp_code=failure.smtp_code)
            return SendResult.failed(failure.kind, failure.detail, failure.hint)

        logger.log_delivery(recipient, True, message_id=message_id, subject=subject)
        return SendResult.sent(message_id)
