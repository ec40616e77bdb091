"""
API routers package
"""

from app.routers.jobs import router as jobs_router
from app.routers.emails import router as emails_router
from app.routers.faqs import router as faqs_router
