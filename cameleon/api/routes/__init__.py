from .garments import router as garments_router
from .health import router as health_router
from .live import router as live_router
from .photo import router as photo_router
from .proxy import router as proxy_router

__all__ = ["garments_router", "health_router", "live_router", "photo_router", "proxy_router"]
