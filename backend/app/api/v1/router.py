"""API v1 router aggregator.

URL structure with /api/v1 prefix. All v1 endpoint routers are included here.
"""

from fastapi import APIRouter

from app.api.v1 import auth, courses

router = APIRouter()

# =============================================================================
# Authentication and email verification
# =============================================================================

router.include_router(auth.router, prefix="/auth", tags=["auth"])

# =============================================================================
# Courses, access links, progress and comments
# =============================================================================

router.include_router(courses.router, prefix="/courses", tags=["courses"])
