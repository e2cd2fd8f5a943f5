"""
Pulse Engine — Error Types
────────────────────────────
Upstream failures are raised as FetchError subclasses.
The view layer turns them into { ok: false, error } responses;
nothing below the view layer ever returns a half-parsed result.

  UpstreamUnavailable   non-2xx, timeout, transport failure
  RateLimited           HTTP 429 (subtype of UpstreamUnavailable)
  UpstreamMalformed     2xx but body is not JSON, or cannot be normalised
"""

from typing import Optional

BODY_PREVIEW_CHARS = 300


class FetchError(Exception):
    kind = "upstream_error"

    def __init__(self, message: str, status_code: Optional[int] = None,
                 body_preview: Optional[str] = None):
        super().__init__(message)
        self.message      = message
        self.status_code  = status_code
        self.body_preview = (body_preview or "")[:BODY_PREVIEW_CHARS]

    def to_dict(self) -> dict:
        d = {"ok": False, "error": self.message, "kind": self.kind}
        if self.status_code is not None:
            d["status"] = self.status_code
        return d


class UpstreamUnavailable(FetchError):
    kind = "upstream_unavailable"


class RateLimited(UpstreamUnavailable):
    kind = "rate_limited"

    def __init__(self, message: str, status_code: Optional[int] = 429,
                 body_preview: Optional[str] = None,
                 retry_after: Optional[float] = None):
        super().__init__(message, status_code, body_preview)
        self.retry_after = retry_after

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.retry_after is not None:
            d["retryAfter"] = self.retry_after
        return d


class UpstreamMalformed(FetchError):
    kind = "upstream_malformed"


class UnknownCategory(ValueError):
    """Raised for a category name the view layer does not know."""
