"""Service wiring: builds the core services once per process from settings."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from app.core.config import Settings
from app.services.asset_service import AssetService
from app.services.email_service import EmailService
from app.services.mail_channel import SmtpMailChannel
from app.services.template_registry import TemplateRegistry


@dataclass
class ServiceContainer:
    assets: AssetService
    email: EmailService


def build_container(settings: Settings) -> ServiceContainer:
    assets = AssetService(
        storage_root=settings.UPLOAD_DIR,
        max_file_size=settings.MAX_FILE_SIZE,
        max_file_count=settings.MAX_FILE_COUNT,
        allowed_mime_types=settings.ALLOWED_MIME_TYPES,
        public_base_url=settings.PUBLIC_BASE_URL,
        url_prefix=settings.UPLOAD_URL_PREFIX,
    )

    channel = SmtpMailChannel(
        hostname=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USER,
        password=settings.SMTP_PASSWORD,
        use_tls=settings.SMTP_SECURE,
        timeout=settings.SMTP_TIMEOUT,
        validate_certs=settings.SMTP_VALIDATE_CERTS,
        max_connections=settings.SMTP_MAX_CONNECTIONS,
    )
    email = EmailService(
        channel=channel,
        templates=TemplateRegistry(settings.EMAIL_TEMPLATES_DIR),
        from_address=settings.SMTP_USER,
        from_name=settings.SMTP_FROM_NAME,
        send_timeout=settings.SMTP_SEND_TIMEOUT,
    )

    return ServiceContainer(assets=assets, email=email)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_asset_service(request: Request) -> AssetService:
    return get_container(request).assets


def get_email_service(request: Request) -> EmailService:
    return get_container(request).email


__all__ = [
    "ServiceContainer",
    "build_container",
    "get_container",
    "get_asset_service",
    "get_email_service",
]
