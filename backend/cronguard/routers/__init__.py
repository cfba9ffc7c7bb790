"""API routers."""
from .monitors import router as monitors_router
from .ping import router as ping_router
from .settings import router as settings_router
from .status import router as status_router
from .public import router as public_router

__all__ = ["monitors_router", "ping_router", "settings_router", "status_router", "public_router"]
