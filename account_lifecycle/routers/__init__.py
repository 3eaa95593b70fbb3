# API Routers
from account_lifecycle.routers.api import router as api_router
from account_lifecycle.routers.sse import router as sse_router

__all__ = ["api_router", "sse_router"]
