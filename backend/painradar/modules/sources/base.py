from __future__ import annotations

from abc import ABC, abstractmethod

from painradar.modules.sources.schemas import Document


class DocumentSource(ABC):
    """Abstract base class for raw document sources."""

    @abstractmethod
    async def fetch_documents(self, topic: str, limit: int) -> list[Document]:
        """Fetch up to ``limit`` documents for a topic.

        Raises RateLimited when throttled and SourceUnavailable on any other
        transport or payload failure.
        """
        ...
