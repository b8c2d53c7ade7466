"""
TeoVerse API Routes Module

Exports all API routers for inclusion in the main FastAPI application.
"""

from teoverse.api.routes.auth import router as auth_router
from teoverse.api.routes.dashboard import federation_router as federation_flag_router
from teoverse.api.routes.dashboard import router as dashboard_router
from teoverse.api.routes.dex import router as dex_router
from teoverse.api.routes.documentation import router as documentation_router
from teoverse.api.routes.federations import router as federations_router
from teoverse.api.routes.passport import router as passport_router
from teoverse.api.routes.public import router as public_router
from teoverse.api.routes.system import router as system_router

__all__ = [
    "auth_router",
    "dashboard_router",
    "federation_flag_router",
    "dex_router",
    "documentation_router",
    "federations_router",
    "passport_router",
    "public_router",
    "system_router",
]
