from .coalescer import Coalescer
from .fallback import FallbackPolicy

__all__ = ["Coalescer", "FallbackPolicy"]
