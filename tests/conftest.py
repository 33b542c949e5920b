"""
Shared fixtures and in-memory backends for Around Service tests
"""
import asyncio
import math
from datetime import datetime
from typing import Any, BinaryIO, Dict, List, Mapping, Optional, Tuple

import pytest
from jose import jwt

from around_service.application.pipeline import PostIngestionPipeline
from around_service.application.search import SearchService
from around_service.config import Settings
from around_service.dependencies import ServiceContainer, build_container
from around_service.domain.repositories import (
    IAttachmentStore,
    IContentAnalyzer,
    IDurableStore,
    IIdentifierGenerator,
    ISearchIndex,
    SearchHit,
)
from around_service.errors import AdapterError, AdapterErrorKind
from around_service.result import Result

EARTH_RADIUS_KM = 6371.0087714


def distance_km(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    """Great-circle distance between two (lat, lon) points"""
    lat1, lon1 = map(math.radians, a)
    lat2, lon2 = map(math.radians, b)
    h = (
        math.sin((lat2 - lat1) / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


class SequentialIds(IIdentifierGenerator):
    def __init__(self, prefix: str = "post"):
        self.prefix = prefix
        self.count = 0

    def new(self) -> str:
        self.count += 1
        return f"{self.prefix}-{self.count}"


class InMemoryAttachmentStore(IAttachmentStore):
    def __init__(self):
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.content_types: Dict[Tuple[str, str], Optional[str]] = {}
        self.failure: Optional[AdapterErrorKind] = None
        self.calls = 0

    async def put(
        self,
        content: BinaryIO,
        bucket: str,
        key: str,
        content_type: Optional[str] = None
    ) -> Result[str, AdapterError]:
        self.calls += 1
        if self.failure:
            return Result.err(AdapterError(self.failure, "storage failure"))
        self.objects[(bucket, key)] = content.read()
        self.content_types[(bucket, key)] = content_type
        return Result.ok(f"https://storage.test/{bucket}/{key}")


class FakeFaceDetector(IContentAnalyzer):
    def __init__(self, has_face: bool = True):
        self.has_face = has_face
        self.failure: Optional[AdapterErrorKind] = None
        self.delay: float = 0.0
        self.links: List[str] = []

    async def detect_face(self, link: str) -> Result[bool, AdapterError]:
        self.links.append(link)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failure:
            return Result.err(AdapterError(self.failure, "vision failure"))
        return Result.ok(self.has_face)


class InMemorySearchIndex(ISearchIndex):
    def __init__(self):
        self.indices: Dict[str, Dict[str, Any]] = {}
        self.documents: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.create_calls = 0
        self.failure: Optional[AdapterErrorKind] = None
        self.query_failure: Optional[AdapterErrorKind] = None
        self.closed = False

    async def ensure_index(self, name: str, mapping: Mapping[str, Any]) -> Result[None, AdapterError]:
        if name not in self.indices:
            self.create_calls += 1
            self.indices[name] = dict(mapping)
            self.documents[name] = {}
        return Result.ok(None)

    async def index(self, index_name: str, document_id: str, document: Mapping[str, Any]) -> Result[None, AdapterError]:
        if self.failure:
            return Result.err(AdapterError(self.failure, "index failure"))
        self.documents.setdefault(index_name, {})[document_id] = dict(document)
        return Result.ok(None)

    async def query_geo_radius(
        self,
        index_name: str,
        center: Tuple[float, float],
        radius_km: float
    ) -> Result[List[SearchHit], AdapterError]:
        if self.query_failure:
            return Result.err(AdapterError(self.query_failure, "query failure"))
        hits = []
        for doc_id, doc in self.documents.get(index_name, {}).items():
            point = (doc["location"]["lat"], doc["location"]["lon"])
            if distance_km(center, point) <= radius_km:
                hits.append(SearchHit(id=doc_id, source=dict(doc)))
        return Result.ok(hits)

    async def query_boolean_field(self, index_name: str, field: str, value: bool) -> Result[List[SearchHit], AdapterError]:
        if self.query_failure:
            return Result.err(AdapterError(self.query_failure, "query failure"))
        return Result.ok([
            SearchHit(id=doc_id, source=dict(doc))
            for doc_id, doc in self.documents.get(index_name, {}).items()
            if doc.get(field) is value
        ])

    async def close(self) -> None:
        self.closed = True


class InMemoryDurableStore(IDurableStore):
    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.failure: Optional[AdapterErrorKind] = None

    async def write_row(
        self,
        table: str,
        row_key: str,
        columns: Mapping[Tuple[str, str], bytes],
        timestamp: datetime
    ) -> Result[None, AdapterError]:
        if self.failure:
            return Result.err(AdapterError(self.failure, "bigtable failure"))
        self.rows[row_key] = {"table": table, "columns": dict(columns), "timestamp": timestamp}
        return Result.ok(None)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        JWT_SECRET_KEY="test-secret",
        S3_BUCKET_NAME="test-bucket",
        ELASTICSEARCH_INDEX="around-test",
        ADAPTER_TIMEOUT_SECONDS=0.5,
    )


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture
def attachment_store() -> InMemoryAttachmentStore:
    return InMemoryAttachmentStore()


@pytest.fixture
def face_detector() -> FakeFaceDetector:
    return FakeFaceDetector()


@pytest.fixture
def search_index(settings: Settings) -> InMemorySearchIndex:
    index = InMemorySearchIndex()
    index.documents[settings.ELASTICSEARCH_INDEX] = {}
    return index


@pytest.fixture
def durable_store() -> InMemoryDurableStore:
    return InMemoryDurableStore()


@pytest.fixture
def container(settings, ids, attachment_store, face_detector, search_index, durable_store) -> ServiceContainer:
    return build_container(
        settings,
        identifiers=ids,
        attachment_store=attachment_store,
        content_analyzer=face_detector,
        search_index=search_index,
        durable_store=durable_store,
    )


@pytest.fixture
def pipeline(container: ServiceContainer) -> PostIngestionPipeline:
    return container.pipeline


@pytest.fixture
def search_service(container: ServiceContainer) -> SearchService:
    return container.search_service


@pytest.fixture
def auth_headers(settings: Settings) -> Dict[str, str]:
    token = jwt.encode({"username": "alice"}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}
