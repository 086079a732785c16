# API endpoints
from . import uploads, emails

__all__ = ["uploads", "emails"]
