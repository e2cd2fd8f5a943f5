from .upstream import UpstreamClient, QueryStrategy

__all__ = ["UpstreamClient", "QueryStrategy"]
