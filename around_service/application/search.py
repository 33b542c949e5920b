"""
Application services - Post search

Both queries are read-only. Posts whose message contains a filtered word are
dropped after retrieval; the index itself is never touched.
"""
import logging
import math
from typing import Iterable, List, Sequence

from ..config import Settings
from ..domain.models import Location, Post
from ..domain.repositories import ISearchIndex, SearchHit
from ..errors import AdapterError, AdapterErrorKind, ErrorKind, ServiceError
from ..result import Result
from .pipeline import call_with_timeout

logger = logging.getLogger(__name__)


def contains_filtered_words(message: str, words: Iterable[str]) -> bool:
    """Case-sensitive substring match against the denylist"""
    return any(word and word in message for word in words)


class SearchService:
    """Geo-radius and face queries over the post index"""

    def __init__(self, settings: Settings, search_index: ISearchIndex):
        self.settings = settings
        self.search_index = search_index
        self.filtered_words: Sequence[str] = tuple(settings.FILTERED_WORDS)

    async def search_by_radius(self, lat: float, lon: float, radius_km: float) -> Result[List[Post], ServiceError]:
        """
        Posts within radius_km kilometers of (lat, lon)

        The boundary is inclusive. Result order follows the index.
        """
        if not Location(lat=lat, lon=lon).is_valid():
            return Result.err(ServiceError(
                ErrorKind.VALIDATION_ERROR,
                "lat must be within [-90, 90] and lon within [-180, 180]"
            ))
        if not math.isfinite(radius_km) or radius_km <= 0:
            return Result.err(ServiceError(ErrorKind.VALIDATION_ERROR, "range must be a positive number"))

        logger.info(f"Search received: {lat}, {lon} {radius_km}km")
        found = await call_with_timeout(
            self.search_index.query_geo_radius(self.settings.ELASTICSEARCH_INDEX, (lat, lon), radius_km),
            self.settings.ADAPTER_TIMEOUT_SECONDS,
            AdapterErrorKind.INDEX_UNAVAILABLE
        )
        return self._to_posts(found)

    async def search_by_face(self) -> Result[List[Post], ServiceError]:
        """Posts flagged as containing a face"""
        logger.info("Received one request for search face")
        found = await call_with_timeout(
            self.search_index.query_boolean_field(self.settings.ELASTICSEARCH_INDEX, "face", True),
            self.settings.ADAPTER_TIMEOUT_SECONDS,
            AdapterErrorKind.INDEX_UNAVAILABLE
        )
        return self._to_posts(found)

    def _to_posts(self, found: Result[List[SearchHit], AdapterError]) -> Result[List[Post], ServiceError]:
        if found.is_err:
            return Result.err(ServiceError(ErrorKind.INDEX_ERROR, "search failed", cause=found.error))

        posts: List[Post] = []
        for hit in found.value:
            try:
                post = Post.from_document(hit.id, hit.source)
            except ValueError as e:
                logger.warning(f"Skipping unreadable document: {e}")
                continue
            if contains_filtered_words(post.message, self.filtered_words):
                logger.debug(f"Filtered post {post.id}")
                continue
            posts.append(post)

        logger.info(f"Returning {len(posts)} of {len(found.value)} posts")
        return Result.ok(posts)
