from .errors import (
    FetchError, UpstreamUnavailable, RateLimited, UpstreamMalformed, UnknownCategory,
)
from .pair_record import PairRecord, format_number, time_ago

__all__ = [
    "FetchError", "UpstreamUnavailable", "RateLimited", "UpstreamMalformed",
    "UnknownCategory", "PairRecord", "format_number", "time_ago",
]
