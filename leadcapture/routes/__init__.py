# leadcapture/routes/__init__.py
"""
API route handlers organized by domain.
"""

from leadcapture.routes.health import router as health_router
from leadcapture.routes.leads import router as leads_router

__all__ = [
    "health_router",
    "leads_router",
]
