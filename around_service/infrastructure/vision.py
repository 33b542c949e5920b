"""
Face detection with the Cloud Vision API
"""
import asyncio
import logging
import threading
from typing import Any, Optional

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import vision

from ..config import Settings
from ..domain.repositories import IContentAnalyzer
from ..errors import AdapterError, AdapterErrorKind
from ..result import Result

logger = logging.getLogger(__name__)


class VisionFaceDetector(IContentAnalyzer):
    """Detect faces in media referenced by a public link"""

    def __init__(self, settings: Settings, client: Optional[Any] = None):
        self.settings = settings
        self._client = client
        self._client_lock = threading.Lock()

    @property
    def client(self) -> Any:
        # Created on first use so missing credentials surface as an analysis failure
        with self._client_lock:
            if self._client is None:
                self._client = vision.ImageAnnotatorClient()
        return self._client

    async def detect_face(self, link: str) -> Result[bool, AdapterError]:
        return await asyncio.to_thread(self._detect_face, link)

    def _detect_face(self, link: str) -> Result[bool, AdapterError]:
        image = vision.Image(source=vision.ImageSource(image_uri=link))
        try:
            response = self.client.face_detection(
                image=image,
                max_results=self.settings.FACE_DETECTION_MAX_RESULTS,
                timeout=self.settings.ADAPTER_TIMEOUT_SECONDS,
            )
        except (GoogleAPIError, GoogleAuthError) as e:
            logger.error(f"Failed to annotate {link}: {e}")
            return Result.err(AdapterError(AdapterErrorKind.ANALYSIS_UNAVAILABLE, str(e)))

        if response.error.message:
            logger.error(f"Vision API rejected {link}: {response.error.message}")
            return Result.err(
                AdapterError(AdapterErrorKind.ANALYSIS_UNAVAILABLE, response.error.message)
            )

        face_count = len(response.face_annotations)
        if face_count == 0:
            logger.info(f"No faces found in {link}")

        if self.settings.FACE_FLAG_MODE == "call_succeeded":
            return Result.ok(True)
        return Result.ok(face_count > 0)
