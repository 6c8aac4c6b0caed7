"""
API routes - combined router from all domain modules.

The shared rate limiter lives here; every sub-router imports it from this package.
"""

import os

from fastapi import APIRouter
from slowapi import Limiter
from slowapi.util import get_remote_address

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
limiter = Limiter(key_func=get_remote_address)
if IS_TEST_ENV:

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()

# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from tennis_league.api.routes.matches import router as matches_router  # noqa: E402
from tennis_league.api.routes.standings import router as standings_router  # noqa: E402

router = APIRouter()
router.include_router(matches_router)
router.include_router(standings_router)
