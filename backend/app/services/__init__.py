from app.services.asset_service import AssetService, AssetCategory, IncomingFile, UploadedAsset
from app.services.template_registry import TemplateRegistry
from app.services.delivery_classifier import DeliveryClassifier, DeliveryErrorKind, ClassifiedFailure
from app.services.mail_channel import MailChannel, SmtpMailChannel
from app.services.email_service import EmailService, SendResult, Attachment, BulkSendReport

__all__ = [
    # Uploads
    "AssetService",
    "AssetCategory",
    "IncomingFile",
    "UploadedAsset",
    # Email
    "TemplateRegistry",
    "DeliveryClassifier",
    "DeliveryErrorKind",
    "ClassifiedFailure",
    "MailChannel",
    "SmtpMailChannel",
    "EmailService",
    "SendResult",
    "Attachment",
    "BulkSendReport",
]
