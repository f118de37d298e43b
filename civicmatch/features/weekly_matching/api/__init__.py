"""
HTTP routes for the weekly matching feature.
"""

from .router import router

__all__ = ["router"]
