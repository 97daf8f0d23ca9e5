"""Route modules."""

from .internal import router as internal_router
from .jobs import router as jobs_router
from .notifications import router as notifications_router
from .review import router as review_router

__all__ = ["internal_router", "jobs_router", "notifications_router", "review_router"]
