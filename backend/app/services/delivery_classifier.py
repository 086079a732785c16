"""
Delivery Classifier - Rule-based classification of mail transport failures

Turns whatever the SMTP transport raised into a DeliveryErrorKind, so the
dispatcher never branches on a library's error codes directly. Auth
failures also get a remediation hint, since a wrong or missing app password
is the most common misconfiguration with consumer mail providers.
"""

import asyncio
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import aiosmtplib


class DeliveryErrorKind(str, Enum):
    """Why a send failed"""
    TEMPLATE_NOT_FOUND = "template_not_found"
    RENDER_FAILURE = "render_failure"
    AUTH_ERROR = "auth_error"
    CONNECTION_ERROR = "connection_error"
    OTHER_ERROR = "other_error"


class AuthRemediation(str, Enum):
    WRONG_CREDENTIALS = "wrong_credentials"
    APP_PASSWORD_REQUIRED = "app_password_required"
    MISSING_CREDENTIALS = "missing_credentials"


REMEDIATION_HINTS = {
    AuthRemediation.WRONG_CREDENTIALS: (
        "SMTP login rejected. Check SMTP_USER and SMTP_PASSWORD; for Gmail use a "
        "16-character App Password, not the account password "
        "(https://support.google.com/mail/?p=BadCredentials)."
    ),
    AuthRemediation.APP_PASSWORD_REQUIRED: (
        "The provider requires an application-specific password. Enable 2-Step "
        "Verification on the account, generate an App Password and set it as SMTP_PASSWORD."
    ),
    AuthRemediation.MISSING_CREDENTIALS: (
        "The relay requires authentication but no usable credentials were sent. "
        "Set SMTP_USER and SMTP_PASSWORD and check SMTP_SECURE/SMTP_PORT."
    ),
}

# SMTP reply codes that mean the relay refused our credentials
AUTH_REPLY_CODES = {530, 534, 535, 538}

_APP_PASSWORD_PATTERN = re.compile(r"application-specific\s+password|app\s+password|InvalidSecondFactor", re.I)


@dataclass
class ClassifiedFailure:
    """Result of classifying a transport exception"""
    kind: DeliveryErrorKind
    detail: str
    smtp_code: Optional[int] = None
    remediation: Optional[AuthRemediation] = None

    @property
    def hint(self) -> Optional[str]:
        return REMEDIATION_HINTS.get(self.remediation) if self.remediation else None


class DeliveryClassifier:
    """Maps transport exceptions to delivery outcomes"""

    @staticmethod
    def _auth_remediation(code: Optional[int], message: str) -> AuthRemediation:
        if code == 534 or _APP_PASSWORD_PATTERN.search(message or ""):
            return AuthRemediation.APP_PASSWORD_REQUIRED
        if code in (530, None):
            return AuthRemediation.MISSING_CREDENTIALS
        return AuthRemediation.WRONG_CREDENTIALS

    @classmethod
    def classify(cls, error: BaseException) -> ClassifiedFailure:
        code = getattr(error, "code", None)
        code = code if isinstance(code, int) else None
        message = getattr(error, "message", None) or str(error) or type(error).__name__

        # Credential / authorization rejections
        if isinstance(error, aiosmtplib.SMTPAuthenticationError) or code in AUTH_REPLY_CODES:
            return ClassifiedFailure(
                kind=DeliveryErrorKind.AUTH_ERROR,
                detail=message,
                smtp_code=code,
                remediation=cls._auth_remediation(code, message),
            )

        # Server offers no AUTH mechanism we can use
        if isinstance(error, aiosmtplib.SMTPNotSupported) and "auth" in message.lower():
            return ClassifiedFailure(
                kind=DeliveryErrorKind.AUTH_ERROR,
                detail=message,
                smtp_code=code,
                remediation=AuthRemediation.MISSING_CREDENTIALS,
            )

        # Transport-level failures reaching or talking to the relay
        if isinstance(error, (
            aiosmtplib.SMTPConnectError,
            aiosmtplib.SMTPConnectTimeoutError,
            aiosmtplib.SMTPServerDisconnected,
            aiosmtplib.SMTPTimeoutError,
            asyncio.TimeoutError,
            ConnectionError,
            OSError,
        )):
            return ClassifiedFailure(
                kind=DeliveryErrorKind.CONNECTION_ERROR,
                detail=f"{type(error).__name__}: {message}",
                smtp_code=code,
            )

        # Bad recipient, quota, content rejection, anything else
        return ClassifiedFailure(
            kind=DeliveryErrorKind.OTHER_ERROR,
            detail=f"{type(error).__name__}: {message}",
            smtp_code=code,
        )
