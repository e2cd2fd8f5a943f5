"""
Pulse Engine
──────────────
Fetch-cache-coalesce-classify layer behind the pulse API.

    from pulse_engine import PulseService, Settings
    service = PulseService(Settings.from_env())
    result  = await service.get_pulse()
"""

from .api.pulse_endpoint import PulseService
from .config import Settings

__version__ = "1.0.0"
__all__ = ["PulseService", "Settings", "__version__"]
