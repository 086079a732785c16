"""
Email API endpoints - transactional, contact and enrollment mail
"""
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, status
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.container import get_email_service
from app.core.logging_config import logger
from app.schemas.email import (
    WelcomeEmailRequest,
    TemplateEmailRequest,
    CustomEmailRequest,
    BulkEmailRequest,
    ContactRequest,
    EnrollmentRequest,
)
from app.services.email_service import EmailService, SendResult


router = APIRouter(prefix="/emails", tags=["emails"])


def _respond(result: SendResult, message: str, **extra) -> JSONResponse:
    """Success -> 200 with messageId, failure -> 502 with the classified error"""
    if result.success:
        return JSONResponse(content={
            "success": True,
            "message": message,
            "data": {"messageId": result.message_id, **extra},
        })
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=result.to_dict())


def _admin_recipient() -> str:
    return settings.ADMIN_EMAIL or settings.SMTP_USER


def _submitted_at() -> str:
    return datetime.now().strftime("%d %B %Y, %I:%M %p")


async def _send_confirmation(service: EmailService, recipient: str, subject: str,
                             template_name: str, context: dict) -> None:
    result = await service.send(recipient, subject, template_name, context)
    if not result.success:
        logger.warning(f"[Email] Confirmation to {recipient} not sent: {result.error_detail}")


@router.post("/welcome")
async def send_welcome_email(request: WelcomeEmailRequest, service: EmailService = Depends(get_email_service)):
    result = await service.send(
        request.email,
        "Welcome to Garud Classes!",
        "welcome",
        {"userName": request.name},
    )
    return _respond(result, "Welcome email sent successfully")


@router.post("/template")
async def send_template_email(request: TemplateEmailRequest, service: EmailService = Depends(get_email_service)):
    """Send any deployed template with a caller-supplied context"""
    result = await service.send(request.to, request.subject, request.template, request.context)
    return _respond(result, "Email sent successfully")


@router.post("/custom")
async def send_custom_email(request: CustomEmailRequest, service: EmailService = Depends(get_email_service)):
    result = await service.send_raw(request.to, request.subject, request.message)
    return _respond(result, "Custom email sent successfully")


@router.post("/bulk")
async def send_bulk_email(request: BulkEmailRequest, service: EmailService = Depends(get_email_service)):
    report = await service.send_bulk([str(e) for e in request.emails], request.subject, request.message)
    return {
        "success": True,
        "message": f"Bulk email completed: {len(report.sent)} sent, {len(report.failed)} failed",
        "data": report.to_dict(),
    }


@router.post("/contact")
async def submit_contact_form(
    request: ContactRequest,
    background_tasks: BackgroundTasks,
    service: EmailService = Depends(get_email_service),
):
    """
    Notify the admin about a contact inquiry.

    The confirmation to the inquirer is only queued once the admin
    notification went out, and runs after the response is sent.
    """
    context = {**request.model_dump(), "submittedAt": _submitted_at()}
    result = await service.send(
        _admin_recipient(),
        f"New Contact Form Inquiry - {request.name}",
        "contact-inquiry",
        context,
    )

    if result.success:
        background_tasks.add_task(
            _send_confirmation, service, request.email,
            "Inquiry Received - Garud Classes", "contact-confirmation", context,
        )

    return _respond(result, "Contact form submitted successfully",
                    inquirerEmail=request.email, adminNotified=True)


@router.post("/enrollment")
async def submit_enrollment(
    request: EnrollmentRequest,
    background_tasks: BackgroundTasks,
    service: EmailService = Depends(get_email_service),
):
    context = {**request.model_dump(), "submittedAt": _submitted_at()}
    result = await service.send(
        _admin_recipient(),
        f"New Enrollment Application - {request.fullName}",
        "enrollment-notification",
        context,
    )

    if result.success:
        background_tasks.add_task(
            _send_confirmation, service, request.email,
            "Enrollment Application Received - Garud Classes", "enrollment-confirmation", context,
        )

    return _respond(result, "Enrollment application submitted successfully",
                    applicantEmail=request.email, adminNotified=True)


@router.get("/templates")
async def list_templates(service: EmailService = Depends(get_email_service)):
    """Deployed templates and the variables each one reads"""
    return {"success": True, "data": service.list_templates()}
