from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class SummaryCacheEntry(BaseModel):
    """A cached summary as persisted in the key/value table."""

    key: str  # Namespaced cache key, e.g. "brevity_1x9k2a"
    summary: str
    written_at: datetime
