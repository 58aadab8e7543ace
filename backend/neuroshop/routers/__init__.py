"""NeuroShop - API Routers"""
from .memory import router as memory_router
from .price_tracking import router as price_tracking_router
from .assistant import router as assistant_router
from .scheduler import router as scheduler_router

__all__ = [
    "memory_router",
    "price_tracking_router",
    "assistant_router",
    "scheduler_router",
]
