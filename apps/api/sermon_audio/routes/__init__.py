"""Route modules."""

from .announcements import router as announcements_router
from .internal import router as internal_router
from .records import router as records_router

__all__ = ["announcements_router", "internal_router", "records_router"]
