"""
Post search index backed by Elasticsearch
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from elasticsearch import ApiError, AsyncElasticsearch, TransportError

from ..config import Settings
from ..domain.repositories import ISearchIndex, SearchHit
from ..errors import AdapterError, AdapterErrorKind
from ..result import Result

logger = logging.getLogger(__name__)

POST_INDEX_MAPPING: Dict[str, Any] = {
    "properties": {
        "location": {"type": "geo_point"},
        "face": {"type": "boolean"},
        "type": {"type": "keyword"},
        "url": {"type": "keyword"},
    }
}


def create_elasticsearch_client(settings: Settings) -> AsyncElasticsearch:
    """Build an async Elasticsearch client"""
    return AsyncElasticsearch(
        hosts=[settings.ELASTICSEARCH_URL],
        request_timeout=settings.ADAPTER_TIMEOUT_SECONDS,
        retry_on_timeout=False,
        max_retries=0,
    )


def _error_type(e: ApiError) -> Optional[str]:
    body = e.body if isinstance(e.body, dict) else {}
    error = body.get("error")
    if isinstance(error, dict):
        return error.get("type")
    return e.message


def _failure(action: str, e: Exception) -> Result[Any, AdapterError]:
    if isinstance(e, TransportError):
        kind = AdapterErrorKind.INDEX_UNAVAILABLE
    else:
        kind = AdapterErrorKind.QUERY_FAILED
    logger.error(f"Search index {action} failed: {e}")
    return Result.err(AdapterError(kind, str(e)))


class ElasticsearchIndex(ISearchIndex):
    """Index and query posts in Elasticsearch

    Queries return at most one page of hits. Without SEARCH_PAGE_SIZE that is
    the backend default of 10, so dense areas are truncated.
    """

    def __init__(self, client: AsyncElasticsearch, page_size: Optional[int] = None):
        self.client = client
        self.page_size = page_size

    async def ensure_index(self, name: str, mapping: Mapping[str, Any]) -> Result[None, AdapterError]:
        try:
            exists = await self.client.indices.exists(index=name)
            if exists:
                logger.info(f"Index {name} exists")
                return Result.ok(None)
            await self.client.indices.create(index=name, mappings=dict(mapping))
            logger.info(f"Created index {name}")
        except ApiError as e:
            # Lost a creation race with another worker
            if _error_type(e) == "resource_already_exists_exception":
                logger.info(f"Index {name} exists")
                return Result.ok(None)
            return _failure("creation", e)
        except TransportError as e:
            return _failure("creation", e)
        return Result.ok(None)

    async def index(
        self,
        index_name: str,
        document_id: str,
        document: Mapping[str, Any]
    ) -> Result[None, AdapterError]:
        try:
            await self.client.index(
                index=index_name,
                id=document_id,
                document=dict(document),
                refresh=True,
            )
        except (ApiError, TransportError) as e:
            return _failure("write", e)
        logger.info(f"Post is saved to index: {document_id}")
        return Result.ok(None)

    async def query_geo_radius(
        self,
        index_name: str,
        center: Tuple[float, float],
        radius_km: float
    ) -> Result[List[SearchHit], AdapterError]:
        lat, lon = center
        query = {
            "geo_distance": {
                "distance": f"{radius_km}km",
                "location": {"lat": lat, "lon": lon},
            }
        }
        return await self._search(index_name, query)

    async def query_boolean_field(
        self,
        index_name: str,
        field: str,
        value: bool
    ) -> Result[List[SearchHit], AdapterError]:
        return await self._search(index_name, {"term": {field: value}})

    async def _search(self, index_name: str, query: Dict[str, Any]) -> Result[List[SearchHit], AdapterError]:
        kwargs: Dict[str, Any] = {"index": index_name, "query": query}
        if self.page_size is not None:
            kwargs["size"] = self.page_size
        try:
            response = await self.client.search(**kwargs)
        except (ApiError, TransportError) as e:
            return _failure("query", e)

        hits = response["hits"]["hits"]
        logger.info(f"Query took {response.get('took')} milliseconds, found {len(hits)} posts")
        return Result.ok([SearchHit(id=hit["_id"], source=hit.get("_source") or {}) for hit in hits])

    async def close(self) -> None:
        await self.client.close()
