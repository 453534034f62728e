from __future__ import annotations

from brevity.models.cache import SummaryCacheEntry
from brevity.models.tools import (
    GetSummaryInput,
    GetSummaryOutput,
    KeySourceOutput,
    Origin,
    SetApiKeyInput,
    SummaryResult,
)

__all__ = [
    # cache
    "SummaryCacheEntry",
    # tools
    "Origin",
    "SummaryResult",
    "GetSummaryInput",
    "GetSummaryOutput",
    "KeySourceOutput",
    "SetApiKeyInput",
]
