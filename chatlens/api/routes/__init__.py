"""API routes package."""

from . import analysis
from . import learning

__all__ = ["analysis", "learning"]
