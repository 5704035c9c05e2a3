from __future__ import annotations

from typing import Optional


class IndexerError(RuntimeError):
    pass


class TransientNetworkError(IndexerError):
    """Gateway or tag-index failure that should be retried by the job layer."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
