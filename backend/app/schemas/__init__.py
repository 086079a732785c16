# Pydantic schemas
from app.schemas.email import (
    WelcomeEmailRequest,
    TemplateEmailRequest,
    CustomEmailRequest,
    BulkEmailRequest,
    ContactRequest,
    EnrollmentRequest,
)

__all__ = [
    "WelcomeEmailRequest",
    "TemplateEmailRequest",
    "CustomEmailRequest",
    "BulkEmailRequest",
    "ContactRequest",
    "EnrollmentRequest",
]
