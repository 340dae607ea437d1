from pydantic import BaseModel, Field

from .enums import ContentFilter, QualityTier
from .policy import SelectionPolicy


class ResolveOptions(BaseModel):
    """Options for resolving a video's format catalog."""

    probe_content_length: bool | None = Field(
        default=None,
        description="Probe formats without a content length (defaults to the setting)",
    )
    include_hls: bool = Field(default=True, description="Add live HLS variants to the catalog")
    headers: dict[str, str] | None = Field(default=None, description="Extra request headers")
    cookies: dict[str, str] | None = Field(default=None, description="Cookies sent with every request")
    proxy: str | None = Field(default=None, description="Proxy URL for all requests")


class SelectRequest(BaseModel):
    """Query parameters of the selection endpoints."""

    quality: QualityTier = Field(default=QualityTier.HIGHEST, description="Quality tier")
    filter: ContentFilter = Field(default=ContentFilter.AUDIO_VIDEO, description="Content filter")
    target_height: int | None = Field(
        default=None,
        ge=1,
        le=4320,
        description="Wanted height when quality is 'target'",
    )

    def to_policy(self) -> SelectionPolicy:
        return SelectionPolicy(
            quality=self.quality,
            filter=self.filter,
            target_height=self.target_height,
        )
