"""Route modules."""

from .audio_analysis import router as audio_analysis_router
from .internal import router as internal_router

__all__ = ["audio_analysis_router", "internal_router"]
