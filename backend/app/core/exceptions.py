"""
Custom Exceptions for the Garud Classes API
===========================================

Upload rejections are 400s the caller can fix, 413 for an oversized body.
Storage and template errors are 500s. The API layer turns any GarudError into the error_response envelope.

Usage:
    from app.core.exceptions import InvalidFileTypeError, StorageFailureError

    if not service.is_allowed(mime_type):
        raise InvalidFileTypeError(mime_type, allowed)

    try:
        asset = await service.accept_upload(...)
    except RejectionError as e:
        return JSONResponse(status_code=e.status_code, content=error_response(e))
"""

from typing import Optional, Any, Dict, List


def _format_size(size_bytes: int) -> str:
    if size_bytes >= 1024 * 1024 and size_bytes % (1024 * 1024) == 0:
        return f"{size_bytes // (1024 * 1024)}MB"
    return f"{size_bytes} bytes"


class GarudError(Exception):
    """Base exception for all Garud Classes errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Upload Rejections (4xx, caller-correctable)
# ============================================

class RejectionError(GarudError):
    """An upload was refused during admission"""

    status_code = 400

    def __init__(self, message: str, code: str = "UPLOAD_REJECTED",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class InvalidFileTypeError(RejectionError):
    """File type not allowed"""

    def __init__(self, file_type: str, allowed_types: List[str]):
        super().__init__(
            f"Invalid file type '{file_type}'. Only images, documents, videos, and audio files are allowed.",
            code="INVALID_FILE_TYPE",
            details={"file_type": file_type, "allowed_types": list(allowed_types)}
        )


class FileTooLargeError(RejectionError):
    """File exceeds the configured size ceiling"""

    def __init__(self, max_size: int, filename: Optional[str] = None):
        super().__init__(
            f"File size should be less than {_format_size(max_size)}",
            code="FILE_TOO_LARGE",
            details={"max_size_bytes": max_size}
        )
        if filename:
            self.details["filename"] = filename


class TooManyFilesError(RejectionError):
    """Request carries more files than allowed"""

    def __init__(self, count: int, max_count: int):
        super().__init__(
            f"Maximum {max_count} files allowed per request",
            code="TOO_MANY_FILES",
            details={"file_count": count, "max_count": max_count}
        )


class UnexpectedFieldError(RejectionError):
    """Multipart field not expected, or expected field over its limit"""

    def __init__(self, field: str, reason: str = "Unexpected file field in request"):
        super().__init__(reason, code="UNEXPECTED_FIELD", details={"field": field})


class NoFileUploadedError(RejectionError):
    """Request contains no file"""

    def __init__(self, message: str = "Please select a file to upload"):
        super().__init__(message, code="NO_FILE_UPLOADED")


class RequestTooLargeError(RejectionError):
    """Request body larger than any valid upload could be"""

    status_code = 413

    def __init__(self, max_size: int):
        super().__init__(
            f"Request body too large. Maximum size is {_format_size(max_size)}",
            code="REQUEST_TOO_LARGE",
            details={"max_size": max_size}
        )


class InvalidAssetPathError(RejectionError):
    """Asset path escapes the storage root"""

    def __init__(self, path: str):
        super().__init__(
            f"Invalid asset path '{path}'",
            code="INVALID_ASSET_PATH",
            details={"path": path}
        )


# ============================================
# Storage Errors (infrastructure)
# ============================================

class StorageFailureError(GarudError):
    """Local storage operation failed (disk full, permission denied, ...)"""

    status_code = 500

    def __init__(self, path: str, message: str = "Storage operation failed"):
        super().__init__(message, code="STORAGE_FAILURE", details={"path": str(path)})


# ============================================
# Template Errors (deployment defects)
# ============================================

class TemplateError(GarudError):
    """Email template could not be produced"""

    status_code = 500


class TemplateNotFoundError(TemplateError):
    """No template file for the requested name"""

    def __init__(self, template_name: str):
        super().__init__(
            f"Email template '{template_name}' not found",
            code="TEMPLATE_NOT_FOUND",
            details={"template": template_name}
        )


class RenderFailureError(TemplateError):
    """Template failed to compile or render with the given context"""

    def __init__(self, template_name: str, message: str):
        super().__init__(
            f"Failed to render email template '{template_name}': {message}",
            code="RENDER_FAILURE",
            details={"template": template_name}
        )


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: GarudError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "error": error.to_dict()
    }
