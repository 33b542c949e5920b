"""
Around - Post Service
Main FastAPI application for location-tagged media posts
"""
from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile, Depends, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional
import logging

from .application.pipeline import PostIngestionPipeline
from .application.search import SearchService
from .auth import get_current_principal
from .config import Settings, configure_logging
from .dependencies import (
    ServiceContainer,
    build_default_container,
    get_pipeline,
    get_search_service,
)
from .domain.models import Attachment, PostSubmission
from .errors import ErrorKind, ServiceError
from .infrastructure.search_index import POST_INDEX_MAPPING
from .schemas import HealthResponse, PostResponse, Principal

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    settings: Settings = app.state.settings
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}...")

    owns_container = app.state.container is None
    if owns_container:
        app.state.container = build_default_container(settings)

    container: ServiceContainer = app.state.container
    ensured = await container.search_index.ensure_index(settings.ELASTICSEARCH_INDEX, POST_INDEX_MAPPING)
    if ensured.is_err:
        if owns_container:
            await container.close()
        raise RuntimeError(f"Search index is not available: {ensured.error.message}")

    logger.info("Started service")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    if owns_container:
        await container.close()


def _raise_for(error: ServiceError, fallback: str) -> None:
    detail = error.detail if error.kind is ErrorKind.VALIDATION_ERROR else fallback
    raise HTTPException(status_code=error.status_code, detail=detail)


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None
) -> FastAPI:
    """
    Create the FastAPI application

    Args:
        settings: Settings to run with; read from the environment when omitted
        container: Pre-built services; built from settings at startup when omitted
    """
    settings = settings or Settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Location-tagged media posts with geo-radius and face search",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=ErrorKind.VALIDATION_ERROR.status_code,
            content={"code": ErrorKind.VALIDATION_ERROR.value, "detail": jsonable_encoder(exc.errors())},
        )

    @app.get("/", response_model=HealthResponse, tags=["Health"])
    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        """Health check endpoint"""
        return HealthResponse(
            service=settings.APP_NAME,
            version=settings.APP_VERSION,
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat()
        )

    @app.post(f"{settings.API_PREFIX}/post", response_model=PostResponse, status_code=status.HTTP_200_OK, tags=["Posts"])
    async def create_post(
        lat: float = Form(...),
        lon: float = Form(...),
        message: str = Form(""),
        image: Optional[UploadFile] = File(None),
        principal: Principal = Depends(get_current_principal),
        pipeline: PostIngestionPipeline = Depends(get_pipeline)
    ):
        """
        Create a post

        - **message**: Post text
        - **lat/lon**: Post coordinates
        - **image**: Image or video attachment
        - Requires authentication
        """
        attachment = None
        if image is not None:
            attachment = Attachment(
                filename=image.filename or "",
                content=image.file,
                content_type=image.content_type
            )

        created = await pipeline.submit(PostSubmission(
            author=principal.username,
            message=message,
            lat=lat,
            lon=lon,
            attachment=attachment,
        ))
        if created.is_err:
            _raise_for(created.error, "Failed to save post")
        return PostResponse.from_post(created.value)

    @app.get(f"{settings.API_PREFIX}/search", response_model=List[PostResponse], tags=["Search"])
    async def search(
        lat: float = Query(...),
        lon: float = Query(...),
        radius_km: Optional[float] = Query(None, alias="range", description="Radius in kilometers"),
        principal: Principal = Depends(get_current_principal),
        search_service: SearchService = Depends(get_search_service)
    ):
        """
        Search posts around a point

        - **lat/lon**: Center of the search
        - **range**: Radius in kilometers (default 200)
        - Requires authentication
        """
        if radius_km is None:
            radius_km = settings.DEFAULT_SEARCH_RANGE_KM
        found = await search_service.search_by_radius(lat, lon, radius_km)
        if found.is_err:
            _raise_for(found.error, "Failed to search posts")
        return [PostResponse.from_post(post) for post in found.value]

    @app.get(f"{settings.API_PREFIX}/search-face", response_model=List[PostResponse], tags=["Search"])
    async def search_face(
        principal: Principal = Depends(get_current_principal),
        search_service: SearchService = Depends(get_search_service)
    ):
        """
        Search posts with a detected face

        - Requires authentication
        """
        found = await search_service.search_by_face()
        if found.is_err:
            _raise_for(found.error, "Failed to search posts")
        return [PostResponse.from_post(post) for post in found.value]

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "around_service.main:app",
        host="0.0.0.0",
        port=8080,
    )
