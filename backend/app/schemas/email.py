"""
Email Schemas - Request models for the email endpoints
"""

from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List, Dict, Any


class WelcomeEmailRequest(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1)


class TemplateEmailRequest(BaseModel):
    """Send any named template with a caller-supplied context"""
    to: EmailStr
    subject: str = Field(..., min_length=1)
    template: str = Field(..., min_length=1, pattern=r"^[A-Za-z0-9_-]+$")
    context: Dict[str, Any] = Field(default_factory=dict)


class CustomEmailRequest(BaseModel):
    to: EmailStr
    subject: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, description="HTML body")


class BulkEmailRequest(BaseModel):
    emails: List[EmailStr] = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, description="HTML body")


class ContactRequest(BaseModel):
    """Public contact form submission"""
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    course: Optional[str] = None
    message: Optional[str] = None
    preferredTime: Optional[str] = None


class EnrollmentRequest(BaseModel):
    """Public enrollment application"""
    fullName: str = Field(..., min_length=1)
    email: EmailStr
    mobileNumber: str = Field(..., min_length=1)
    currentClass: str = Field(..., min_length=1)
    targetExam: str = Field(..., min_length=1)
    preferredBatch: str = Field(..., min_length=1)
    dateOfBirth: Optional[str] = None
    gender: Optional[str] = None
    alternateContact: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    schoolCollege: Optional[str] = None
    sourceOfInformation: Optional[str] = None
    message: Optional[str] = None
