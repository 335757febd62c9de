"""
API Routes.
"""

from . import halacha, health

__all__ = ["health", "halacha"]
