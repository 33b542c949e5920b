"""
Pydantic schemas for Around Service
"""
from pydantic import BaseModel, Field
from typing import Optional

from .domain.models import Post


class LocationSchema(BaseModel):
    """Geo-coordinate"""
    lat: float
    lon: float


class PostResponse(BaseModel):
    """Post as returned by the search endpoints"""
    id: Optional[str] = None
    user: str
    message: str
    location: LocationSchema
    url: str = ""
    type: str = Field("unknown", description="image, video or unknown")
    face: bool = False

    @classmethod
    def from_post(cls, post: Post) -> "PostResponse":
        return cls(
            id=post.id,
            user=post.user,
            message=post.message,
            location=LocationSchema(lat=post.location.lat, lon=post.location.lon),
            url=post.url,
            type=post.media_kind.value,
            face=post.has_face,
        )


class Principal(BaseModel):
    """Authenticated caller"""
    username: str


class HealthResponse(BaseModel):
    """Health check response"""
    service: str
    version: str
    status: str
    timestamp: str
