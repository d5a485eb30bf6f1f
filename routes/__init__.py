"""HTTP route modules (FastAPI routers) for the application.

This file explicitly exports the router objects provided by each
submodule so callers can do:

	from routes import matches_router
	app.include_router(matches_router, prefix="/matches")

Submodules should expose an `APIRouter` named `router`.
"""

from .matches import router as matches_router
from .ws import router as ws_router

__all__ = [
	"matches_router",
	"ws_router",
]
