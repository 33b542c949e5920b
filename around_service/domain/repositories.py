"""
Repository interfaces - Define contracts for the storage and analysis backends

Adapters report backend failures as Result.err(AdapterError) instead of
raising.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, BinaryIO, Dict, List, Mapping, Optional, Tuple

from ..errors import AdapterError
from ..result import Result


@dataclass(frozen=True)
class SearchHit:
    """A document returned by the search index"""
    id: str
    source: Dict[str, Any]


class IIdentifierGenerator(ABC):
    """Post identifier generator interface"""

    @abstractmethod
    def new(self) -> str:
        """Return a new globally unique identifier"""
        pass


class IAttachmentStore(ABC):
    """Blob store interface"""

    @abstractmethod
    async def put(
        self,
        content: BinaryIO,
        bucket: str,
        key: str,
        content_type: Optional[str] = None
    ) -> Result[str, AdapterError]:
        """Store the stream under key and return a public link"""
        pass


class IContentAnalyzer(ABC):
    """Face detection interface"""

    @abstractmethod
    async def detect_face(self, link: str) -> Result[bool, AdapterError]:
        """Report whether the media behind link contains a face"""
        pass


class ISearchIndex(ABC):
    """Search index interface"""

    @abstractmethod
    async def ensure_index(self, name: str, mapping: Mapping[str, Any]) -> Result[None, AdapterError]:
        """Create the index with mapping unless it already exists"""
        pass

    @abstractmethod
    async def index(
        self,
        index_name: str,
        document_id: str,
        document: Mapping[str, Any]
    ) -> Result[None, AdapterError]:
        """Upsert a document, visible to queries once this returns"""
        pass

    @abstractmethod
    async def query_geo_radius(
        self,
        index_name: str,
        center: Tuple[float, float],
        radius_km: float
    ) -> Result[List[SearchHit], AdapterError]:
        """Documents whose location lies within radius_km of center"""
        pass

    @abstractmethod
    async def query_boolean_field(
        self,
        index_name: str,
        field: str,
        value: bool
    ) -> Result[List[SearchHit], AdapterError]:
        """Documents whose field equals value"""
        pass

    async def close(self) -> None:
        """Release client resources"""
        return None


class IDurableStore(ABC):
    """Wide-column store interface"""

    @abstractmethod
    async def write_row(
        self,
        table: str,
        row_key: str,
        columns: Mapping[Tuple[str, str], bytes],
        timestamp: datetime
    ) -> Result[None, AdapterError]:
        """Write a single versioned row"""
        pass
