"""
Error kinds returned by adapters, the ingestion pipeline and search
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AdapterErrorKind(str, Enum):
    """Failure categories reported by backend adapters"""
    STORAGE_UNAVAILABLE = "storage_unavailable"
    WRITE_FAILED = "write_failed"
    ANALYSIS_UNAVAILABLE = "analysis_unavailable"
    INDEX_UNAVAILABLE = "index_unavailable"
    QUERY_FAILED = "query_failed"
    STORE_UNAVAILABLE = "store_unavailable"


@dataclass(frozen=True)
class AdapterError:
    """A backend call that did not succeed"""
    kind: AdapterErrorKind
    message: str


class ErrorKind(str, Enum):
    """User-facing error taxonomy"""
    AUTHENTICATION_REQUIRED = "authentication_required"
    VALIDATION_ERROR = "validation_error"
    ATTACHMENT_ERROR = "attachment_error"
    ANALYSIS_ERROR = "analysis_error"
    INDEX_ERROR = "index_error"
    DURABLE_STORE_ERROR = "durable_store_error"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES.get(self, 500)


_STATUS_CODES = {
    ErrorKind.AUTHENTICATION_REQUIRED: 401,
    ErrorKind.VALIDATION_ERROR: 400,
}


@dataclass(frozen=True)
class ServiceError:
    """Terminal failure of a pipeline run or search query"""
    kind: ErrorKind
    detail: str
    state: Optional[str] = None
    cause: Optional[AdapterError] = None

    @property
    def status_code(self) -> int:
        return self.kind.status_code
