from pydantic import BaseModel, Field

from app.core.domain import BoundingBox, SourceRequest


class ImageQuery(BaseModel):
    url: str = Field(min_length=1, max_length=8192)
    w: int | None = Field(default=None, ge=0)
    h: int | None = Field(default=None, ge=0)

    def to_source_request(self) -> SourceRequest:
        return SourceRequest(url=self.url, box=BoundingBox(width=self.w, height=self.h))


class DimensionQuery(BaseModel):
    url: str = Field(min_length=1, max_length=8192)

    def to_source_request(self) -> SourceRequest:
        return SourceRequest(url=self.url)


class FaviconQuery(BaseModel):
    # Length floor is enforced by FaviconResolver so it maps to a pipeline BadRequest
    domain: str = Field(default="", max_length=253)


class DimensionsOut(BaseModel):
    width: int
    height: int
