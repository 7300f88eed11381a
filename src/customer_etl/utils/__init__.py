"""
Shared utilities.
"""

from .concurrent_set import ConcurrentSet

__all__ = ["ConcurrentSet"]
