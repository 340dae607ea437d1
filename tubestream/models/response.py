from pydantic import BaseModel, Field

from .format import FormatDescriptor


class Thumbnail(BaseModel):
    url: str
    width: int | None = None
    height: int | None = None


class VideoDetails(BaseModel):
    """Metadata about the video."""

    title: str | None = Field(None, description="Video title")
    author: str | None = Field(None, description="Channel name")
    channel_id: str | None = Field(None, description="Channel ID")
    description: str | None = Field(None, description="Video description")
    length_seconds: int | None = Field(None, description="Duration in seconds")
    view_count: int | None = Field(None, description="View count")
    keywords: list[str] = Field(default_factory=list, description="Tags/keywords")
    thumbnails: list[Thumbnail] = Field(default_factory=list)
    upload_date: str | None = Field(None, description="Upload date (YYYY-MM-DD)")
    is_live: bool = Field(False, description="Whether the video is a live broadcast")
    is_live_content: bool = Field(False, description="Whether the video is or was live")
    age_restricted: bool = Field(False, description="Age-restricted content")


class VideoInfo(BaseModel):
    """A resolved video: metadata plus its format catalog."""

    video_id: str = Field(..., description="11-character video ID")
    details: VideoDetails = Field(default_factory=VideoDetails)
    formats: list[FormatDescriptor] = Field(default_factory=list, description="Catalog order")
    player_url: str | None = Field(None, description="Player script used for deciphering")
    hls_manifest_url: str | None = None
    dash_manifest_url: str | None = None

    @property
    def usable_formats(self) -> list[FormatDescriptor]:
        return [f for f in self.formats if f.usable]


class ErrorResponse(BaseModel):
    """Error response model."""

    success: bool = Field(False)
    error: str = Field(..., description="Error message")
    error_code: str | None = Field(None, description="Machine-readable error code")
