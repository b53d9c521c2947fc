"""API routers."""

from fixdesk.routers.cases import router as cases_router
from fixdesk.routers.policies import router as policies_router
from fixdesk.routers.proposals import router as proposals_router

__all__ = [
    "cases_router",
    "policies_router",
    "proposals_router",
]
