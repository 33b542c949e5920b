"""
Configuration settings for Around Service
"""
from pydantic_settings import BaseSettings
from typing import List, Literal, Optional
import logging


class Settings(BaseSettings):
    """Application settings

    Constructed once at startup and handed to every component; instances
    are immutable.
    """

    # Application
    APP_NAME: str = "Around Post Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    API_PREFIX: str = "/api/v1"

    # Auth
    JWT_SECRET_KEY: str = "your-secret-key-change-this-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_USERNAME_CLAIM: str = "username"

    # S3/MinIO Storage
    STORAGE_TYPE: Literal["s3", "minio"] = "minio"
    S3_BUCKET_NAME: str = "post-images"
    S3_ENDPOINT_URL: str = "http://localhost:9000"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"
    MEDIA_PUBLIC_BASE_URL: Optional[str] = None

    # Elasticsearch
    ELASTICSEARCH_URL: str = "http://localhost:9200"
    ELASTICSEARCH_INDEX: str = "around"
    SEARCH_PAGE_SIZE: Optional[int] = None  # None = backend default (10 hits)
    DEFAULT_SEARCH_RANGE_KM: float = 200.0

    # Bigtable
    GCP_PROJECT_ID: str = "around-project"
    BIGTABLE_INSTANCE_ID: str = "around-post"
    BIGTABLE_TABLE_ID: str = "post"

    # Face detection
    FACE_DETECTION_MAX_RESULTS: int = 10
    FACE_FLAG_MODE: Literal["annotations", "call_succeeded"] = "call_succeeded"
    ANALYSIS_FAILURE_FATAL: bool = True

    # Content
    FILTERED_WORDS: List[str] = ["fuck", "shit"]
    MAX_MESSAGE_LENGTH: int = 2200

    # Backend calls
    ADAPTER_TIMEOUT_SECONDS: float = 10.0

    # BigQuery dump
    BIGQUERY_DATASET: str = "post_analysis"
    BIGQUERY_TABLE: str = "daily_dump"

    # CORS
    CORS_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: List[str] = ["*"]
    CORS_ALLOW_HEADERS: List[str] = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = True
        frozen = True


def configure_logging(settings: Settings) -> None:
    """Configure root logging once per process"""
    logging.basicConfig(
        level=logging.INFO if not settings.DEBUG else logging.DEBUG,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
