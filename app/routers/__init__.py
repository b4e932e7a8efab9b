"""
API Routers
Separate router modules for each domain.
"""

from app.routers import proposals

__all__ = ["proposals"]
