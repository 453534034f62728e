"""Protocol interfaces for swappable components.

The coordinator, router and AppState reference these protocols, not the
concrete implementations. This allows:
- Tests to use lightweight in-memory fakes
- Other storage backends to be swapped in without touching the coordinator
"""

from __future__ import annotations

from typing import Protocol


class CacheProtocol(Protocol):
    """Interface for the summary cache backend."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> bool: ...

    async def sweep(self) -> int: ...

    async def clear(self) -> int: ...

    async def count(self) -> int: ...


class CredentialProvider(Protocol):
    """One tier of the API credential lookup."""

    source: str

    async def get_credential(self) -> str | None: ...


class SummaryClientProtocol(Protocol):
    """Interface for the text-generation client."""

    async def generate(self, input_text: str) -> str: ...
