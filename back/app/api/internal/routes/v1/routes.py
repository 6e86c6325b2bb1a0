# Third-party imports
from fastapi import APIRouter

# Local application imports
from app.api.internal.routes.v1.issues import issue_router, vote_router

router = APIRouter(prefix="/v1")

# Include all internal v1 routers
router.include_router(issue_router)
router.include_router(vote_router)
