from .pulse_endpoint import PulseService

__all__ = ["PulseService"]
