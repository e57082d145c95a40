from .coding import router as coding_router
from .occupations import router as occupations_router

__all__ = [
    "coding_router",
    "occupations_router"
]
