"""
Service container and FastAPI dependencies
"""
from dataclasses import dataclass
from fastapi import Request
import logging

from .application.pipeline import PostIngestionPipeline
from .application.search import SearchService
from .config import Settings
from .domain.repositories import (
    IAttachmentStore,
    IContentAnalyzer,
    IDurableStore,
    IIdentifierGenerator,
    ISearchIndex,
)
from .infrastructure.bigtable import BigtablePostStore
from .infrastructure.identifiers import UUIDGenerator
from .infrastructure.search_index import ElasticsearchIndex, create_elasticsearch_client
from .infrastructure.storage import S3AttachmentStore, create_s3_client
from .infrastructure.vision import VisionFaceDetector

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Backends and services shared by all requests"""
    search_index: ISearchIndex
    pipeline: PostIngestionPipeline
    search_service: SearchService

    async def close(self) -> None:
        await self.search_index.close()


def build_container(
    settings: Settings,
    identifiers: IIdentifierGenerator,
    attachment_store: IAttachmentStore,
    content_analyzer: IContentAnalyzer,
    search_index: ISearchIndex,
    durable_store: IDurableStore
) -> ServiceContainer:
    """Wire the pipeline and search service onto the given backends"""
    pipeline = PostIngestionPipeline(
        settings,
        identifiers=identifiers,
        attachment_store=attachment_store,
        content_analyzer=content_analyzer,
        search_index=search_index,
        durable_store=durable_store,
    )
    return ServiceContainer(
        search_index=search_index,
        pipeline=pipeline,
        search_service=SearchService(settings, search_index),
    )


def build_default_container(settings: Settings) -> ServiceContainer:
    """Container backed by S3/MinIO, Cloud Vision, Elasticsearch and Bigtable"""
    logger.info(f"Storage type: {settings.STORAGE_TYPE}, bucket: {settings.S3_BUCKET_NAME}")
    logger.info(f"Search index: {settings.ELASTICSEARCH_URL}/{settings.ELASTICSEARCH_INDEX}")
    return build_container(
        settings,
        identifiers=UUIDGenerator(),
        attachment_store=S3AttachmentStore(create_s3_client(settings), settings),
        content_analyzer=VisionFaceDetector(settings),
        search_index=ElasticsearchIndex(
            create_elasticsearch_client(settings),
            page_size=settings.SEARCH_PAGE_SIZE
        ),
        durable_store=BigtablePostStore(settings),
    )


def get_settings(request: Request) -> Settings:
    """Dependency for the application settings"""
    return request.app.state.settings


def get_pipeline(request: Request) -> PostIngestionPipeline:
    """Dependency for the ingestion pipeline"""
    return request.app.state.container.pipeline


def get_search_service(request: Request) -> SearchService:
    """Dependency for the search service"""
    return request.app.state.container.search_service
