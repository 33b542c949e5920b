"""
Domain models - Core business entities
"""
import math
import os
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, BinaryIO, Dict, Mapping, Optional, Tuple


class MediaKind(str, Enum):
    """Media kind enumeration"""
    IMAGE = "image"
    VIDEO = "video"
    UNKNOWN = "unknown"


MEDIA_KINDS: Dict[str, MediaKind] = {
    ".jpeg": MediaKind.IMAGE,
    ".jpg": MediaKind.IMAGE,
    ".gif": MediaKind.IMAGE,
    ".png": MediaKind.IMAGE,
    ".mov": MediaKind.VIDEO,
    ".mp4": MediaKind.VIDEO,
    ".avi": MediaKind.VIDEO,
    ".flv": MediaKind.VIDEO,
    ".wmv": MediaKind.VIDEO,
}


def classify_media_kind(filename: str) -> MediaKind:
    """Map a filename to its media kind by extension (case-sensitive)"""
    _, ext = os.path.splitext(filename or "")
    return MEDIA_KINDS.get(ext, MediaKind.UNKNOWN)


def format_coordinate(value: float) -> str:
    """Shortest round-trip decimal text for a coordinate, never in exponent form"""
    return format(Decimal(repr(float(value))), "f")


@dataclass(frozen=True)
class Location:
    """Geo-coordinate pair"""
    lat: float
    lon: float

    def is_valid(self) -> bool:
        return (
            math.isfinite(self.lat)
            and math.isfinite(self.lon)
            and -90.0 <= self.lat <= 90.0
            and -180.0 <= self.lon <= 180.0
        )


# Column layout of a post row in the durable store
ROW_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("post", "user"),
    ("post", "message"),
    ("location", "lat"),
    ("location", "lon"),
)


@dataclass
class Post:
    """Post domain model"""
    user: str
    message: str
    location: Location
    url: str = ""
    media_kind: MediaKind = MediaKind.UNKNOWN
    has_face: bool = False
    id: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        """Search index document"""
        return {
            "user": self.user,
            "message": self.message,
            "location": {"lat": self.location.lat, "lon": self.location.lon},
            "url": self.url,
            "type": self.media_kind.value,
            "face": self.has_face,
        }

    @classmethod
    def from_document(cls, document_id: Optional[str], source: Mapping[str, Any]) -> "Post":
        """Build a post from an index document

        Raises:
            ValueError: If a required field is missing or has the wrong type
        """
        try:
            user, message = source["user"], source["message"]
            if not isinstance(user, str) or not isinstance(message, str):
                raise TypeError("user and message must be strings")
            location = source["location"]
            post = cls(
                id=document_id,
                user=user,
                message=message,
                location=Location(lat=float(location["lat"]), lon=float(location["lon"])),
                url=str(source.get("url") or ""),
                media_kind=MediaKind(source.get("type") or MediaKind.UNKNOWN.value),
                has_face=source.get("face") is True,
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed post document {document_id}: {e}") from e
        return post

    def to_row(self) -> Dict[Tuple[str, str], bytes]:
        """Durable store columns"""
        return {
            ("post", "user"): self.user.encode("utf-8"),
            ("post", "message"): self.message.encode("utf-8"),
            ("location", "lat"): format_coordinate(self.location.lat).encode("utf-8"),
            ("location", "lon"): format_coordinate(self.location.lon).encode("utf-8"),
        }


@dataclass
class Attachment:
    """Uploaded file handed to the pipeline"""
    filename: str
    content: BinaryIO
    content_type: Optional[str] = None


@dataclass
class PostSubmission:
    """A new post as received from an authenticated principal"""
    author: str
    message: str
    lat: float
    lon: float
    attachment: Optional[Attachment] = None
