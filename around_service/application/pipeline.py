"""
Post ingestion pipeline

A submission moves through a fixed sequence of states:

    RECEIVED -> IDENTIFIER_ASSIGNED -> ATTACHMENT_STORED -> ANALYZED
             -> INDEXED -> PERSISTED -> COMPLETE

Any state may end in FAILED. Each backend is called exactly once, with no
retries and no compensation: when a later step fails, the attachment and
index document written by earlier steps stay where they are.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, List, Optional, TypeVar

from ..config import Settings
from ..domain.models import Location, Post, PostSubmission, classify_media_kind
from ..domain.repositories import (
    IAttachmentStore,
    IContentAnalyzer,
    IDurableStore,
    IIdentifierGenerator,
    ISearchIndex,
)
from ..errors import AdapterError, AdapterErrorKind, ErrorKind, ServiceError
from ..result import Result

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PipelineState(str, Enum):
    """Ingestion states"""
    RECEIVED = "received"
    IDENTIFIER_ASSIGNED = "identifier_assigned"
    ATTACHMENT_STORED = "attachment_stored"
    ANALYZED = "analyzed"
    INDEXED = "indexed"
    PERSISTED = "persisted"
    COMPLETE = "complete"
    FAILED = "failed"


async def call_with_timeout(
    awaitable: Awaitable[Result[T, AdapterError]],
    timeout: float,
    timeout_kind: AdapterErrorKind
) -> Result[T, AdapterError]:
    """Await an adapter call, turning a timeout into an adapter error"""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"Backend call timed out after {timeout}s")
        return Result.err(AdapterError(timeout_kind, f"timed out after {timeout}s"))


@dataclass
class PipelineRun:
    """State of one submission as it moves through the pipeline"""
    submission: PostSubmission
    state: PipelineState = PipelineState.RECEIVED
    post_id: Optional[str] = None
    post: Optional[Post] = None
    error: Optional[ServiceError] = None
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])

    def advance(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)
        logger.info(f"Post {self.post_id or '-'} is {state.value}")

    def fail(self, kind: ErrorKind, detail: str, cause: Optional[AdapterError] = None) -> "PipelineRun":
        self.error = ServiceError(kind=kind, detail=detail, state=self.state.value, cause=cause)
        logger.error(f"Post {self.post_id or '-'} failed at {self.state.value}: {detail}")
        self.state = PipelineState.FAILED
        self.history.append(PipelineState.FAILED)
        return self

    def result(self) -> Result[Post, ServiceError]:
        if self.state is PipelineState.COMPLETE:
            return Result.ok(self.post)
        return Result.err(self.error)


class PostIngestionPipeline:
    """Create a post across blob storage, face analysis, search index and durable store"""

    def __init__(
        self,
        settings: Settings,
        identifiers: IIdentifierGenerator,
        attachment_store: IAttachmentStore,
        content_analyzer: IContentAnalyzer,
        search_index: ISearchIndex,
        durable_store: IDurableStore,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ):
        self.settings = settings
        self.identifiers = identifiers
        self.attachment_store = attachment_store
        self.content_analyzer = content_analyzer
        self.search_index = search_index
        self.durable_store = durable_store
        self.clock = clock

    async def submit(self, submission: PostSubmission) -> Result[Post, ServiceError]:
        """Run the pipeline and return the created post or the failure"""
        run = await self.run(submission)
        return run.result()

    async def run(self, submission: PostSubmission) -> PipelineRun:
        """Run the pipeline and return the full run record"""
        run = PipelineRun(submission=submission)
        logger.info(f"Received one post request {submission.message!r}")

        invalid = self._validate(submission)
        if invalid:
            return run.fail(ErrorKind.VALIDATION_ERROR, invalid)

        run.post_id = self.identifiers.new()
        run.post = Post(
            id=run.post_id,
            user=submission.author,
            message=submission.message,
            location=Location(lat=float(submission.lat), lon=float(submission.lon)),
        )
        run.advance(PipelineState.IDENTIFIER_ASSIGNED)

        for step in (self._store_attachment, self._analyze, self._index, self._persist):
            await step(run)
            if run.state is PipelineState.FAILED:
                return run

        run.advance(PipelineState.COMPLETE)
        return run

    def _validate(self, submission: PostSubmission) -> Optional[str]:
        if not submission.author:
            return "author is required"
        if submission.message is None:
            return "message is required"
        if len(submission.message) > self.settings.MAX_MESSAGE_LENGTH:
            return f"message exceeds {self.settings.MAX_MESSAGE_LENGTH} characters"
        try:
            location = Location(lat=float(submission.lat), lon=float(submission.lon))
        except (TypeError, ValueError):
            return "lat and lon must be numbers"
        if not location.is_valid():
            return "lat must be within [-90, 90] and lon within [-180, 180]"
        return None

    async def _store_attachment(self, run: PipelineRun) -> None:
        attachment = run.submission.attachment
        if attachment is None or attachment.content is None or not attachment.filename:
            run.fail(ErrorKind.ATTACHMENT_ERROR, "attachment is required")
            return

        run.post.media_kind = classify_media_kind(attachment.filename)
        stored = await call_with_timeout(
            self.attachment_store.put(
                attachment.content,
                self.settings.S3_BUCKET_NAME,
                run.post_id,
                attachment.content_type
            ),
            self.settings.ADAPTER_TIMEOUT_SECONDS,
            AdapterErrorKind.STORAGE_UNAVAILABLE
        )
        if stored.is_err:
            run.fail(ErrorKind.ATTACHMENT_ERROR, "failed to store attachment", stored.error)
            return

        run.post.url = stored.value
        run.advance(PipelineState.ATTACHMENT_STORED)

    async def _analyze(self, run: PipelineRun) -> None:
        analyzed = await call_with_timeout(
            self.content_analyzer.detect_face(run.post.url),
            self.settings.ADAPTER_TIMEOUT_SECONDS,
            AdapterErrorKind.ANALYSIS_UNAVAILABLE
        )
        if analyzed.is_ok:
            run.post.has_face = analyzed.value
        elif self.settings.ANALYSIS_FAILURE_FATAL:
            run.fail(ErrorKind.ANALYSIS_ERROR, "failed to annotate the attachment", analyzed.error)
            return
        else:
            logger.warning(f"Face detection unavailable for post {run.post_id}, face flag set to false")
            run.post.has_face = False
        run.advance(PipelineState.ANALYZED)

    async def _index(self, run: PipelineRun) -> None:
        indexed = await call_with_timeout(
            self.search_index.index(
                self.settings.ELASTICSEARCH_INDEX,
                run.post_id,
                run.post.to_document()
            ),
            self.settings.ADAPTER_TIMEOUT_SECONDS,
            AdapterErrorKind.INDEX_UNAVAILABLE
        )
        if indexed.is_err:
            run.fail(ErrorKind.INDEX_ERROR, "failed to index post", indexed.error)
            return
        run.advance(PipelineState.INDEXED)

    async def _persist(self, run: PipelineRun) -> None:
        # The index already holds the post; a failure here leaves the stores diverged
        persisted = await call_with_timeout(
            self.durable_store.write_row(
                self.settings.BIGTABLE_TABLE_ID,
                run.post_id,
                run.post.to_row(),
                self.clock()
            ),
            self.settings.ADAPTER_TIMEOUT_SECONDS,
            AdapterErrorKind.STORE_UNAVAILABLE
        )
        if persisted.is_err:
            run.fail(ErrorKind.DURABLE_STORE_ERROR, "failed to persist post", persisted.error)
            return
        run.advance(PipelineState.PERSISTED)
