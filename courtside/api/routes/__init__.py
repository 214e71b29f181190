"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error mapping) lives here; every sub-router
imports what it needs from this package.
"""

import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from courtside.services.errors import MatchmakingError

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)


# ---------------------------------------------------------------------------
# Shared error mapping
# ---------------------------------------------------------------------------
def to_http_exception(error: MatchmakingError) -> HTTPException:
    """Translate a typed service outcome into the HTTP response for it."""
    headers = {"Retry-After": "1"} if error.retryable else None
    return HTTPException(status_code=error.status_code, detail=error.message, headers=headers)


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from courtside.api.routes.matches import router as matches_router  # noqa: E402
from courtside.api.routes.applications import router as applications_router  # noqa: E402
from courtside.api.routes.results import router as results_router  # noqa: E402
from courtside.api.routes.users import router as users_router  # noqa: E402
from courtside.api.routes.notifications import router as notifications_router  # noqa: E402

router = APIRouter()
router.include_router(matches_router)
router.include_router(applications_router)
router.include_router(results_router)
router.include_router(users_router)
router.include_router(notifications_router)
