import re

from pydantic import BaseModel, Field, model_validator

from ..errors import TubeStreamError
from .enums import FormatType

_MIME_RE = re.compile(r'^(?P<type>\w+)/(?P<container>[\w.+-]+)(?:;\s*codecs="(?P<codecs>[^"]*)")?')
_LABEL_HEIGHT_RE = re.compile(r"(\d+)p")

AUDIO_ENCODING_RANKS = ["mp4a", "mp3", "vorbis", "aac", "opus", "flac"]
VIDEO_ENCODING_RANKS = ["mp4v", "avc1", "Sorenson H.283", "MPEG-4 Visual", "VP8", "VP9", "H.264"]


class MimeType(BaseModel):
    """Parsed ``mimeType`` attribute, e.g. ``video/mp4; codecs="avc1.4d401f, mp4a.40.2"``."""

    type: str = Field(..., description="Top-level media type (video, audio)")
    container: str = Field(..., description="Container subtype (mp4, webm, ts)")
    codecs: list[str] = Field(default_factory=list, description="Codec strings in declared order")

    @classmethod
    def parse(cls, value: str) -> "MimeType":
        match = _MIME_RE.match(value.strip())
        if not match:
            raise ValueError(f"Invalid mime type: {value!r}")
        codecs = [c.strip() for c in (match.group("codecs") or "").split(",") if c.strip()]
        return cls(type=match.group("type"), container=match.group("container"), codecs=codecs)

    def __str__(self) -> str:
        base = f"{self.type}/{self.container}"
        if self.codecs:
            return f'{base}; codecs="{", ".join(self.codecs)}"'
        return base


class CipherParams(BaseModel):
    """Pieces of a stream URL that still have to go through a transform."""

    url: str = Field(..., description="Base URL the deciphered values are written into")
    s: str | None = Field(None, description="Scrambled signature")
    sp: str = Field("signature", description="Query parameter that receives the signature")
    n: str | None = Field(None, description="Throttling parameter to transform")


class FormatDescriptor(BaseModel):
    """One playable stream of a video."""

    itag: int = Field(..., description="YouTube format identifier")
    mime_type: MimeType
    bitrate: int = Field(0, description="Peak bitrate in bits/s")
    average_bitrate: int | None = Field(None, description="Average bitrate in bits/s")
    audio_bitrate: int | None = Field(None, description="Audio bitrate in kbps")
    width: int | None = None
    height: int | None = None
    fps: float | None = None
    quality: str | None = None
    quality_label: str | None = Field(None, description="Quality label (e.g., '1080p60')")
    audio_quality: str | None = None
    audio_sample_rate: int | None = None
    audio_channels: int | None = None
    content_length: int | None = Field(None, description="Exact size in bytes, None until known")
    approx_duration_ms: int | None = None

    has_video: bool = False
    has_audio: bool = False
    is_adaptive: bool = Field(False, description="Single media type (True) or muxed (False)")
    is_live: bool = False
    is_hls: bool = False
    is_dash_mpd: bool = False

    url: str | None = Field(None, description="Complete playable URL")
    cipher: CipherParams | None = Field(None, description="Pending signature/n parameters")

    unusable_reason: str | None = None
    error_code: str | None = None

    @model_validator(mode="after")
    def _check_url_state(self) -> "FormatDescriptor":
        if self.url is not None and self.cipher is not None:
            raise ValueError("A format has either a complete URL or cipher parameters, not both")
        return self

    @property
    def container(self) -> str:
        return self.mime_type.container

    @property
    def codecs(self) -> list[str]:
        return self.mime_type.codecs

    @property
    def format_type(self) -> FormatType:
        if self.has_video and not self.has_audio:
            return FormatType.VIDEO_ONLY
        if self.has_audio and not self.has_video:
            return FormatType.AUDIO_ONLY
        return FormatType.COMBINED

    @property
    def requires_decipher(self) -> bool:
        return self.url is None and self.cipher is not None

    @property
    def usable(self) -> bool:
        return self.url is not None and self.unusable_reason is None

    @property
    def resolution(self) -> int:
        """Vertical resolution, falling back to the number in the quality label."""
        if self.height:
            return self.height
        if self.quality_label:
            match = _LABEL_HEIGHT_RE.search(self.quality_label)
            if match:
                return int(match.group(1))
        return 0

    @property
    def video_encoding_rank(self) -> int:
        return _encoding_rank(self.codecs, VIDEO_ENCODING_RANKS)

    @property
    def audio_encoding_rank(self) -> int:
        return _encoding_rank(self.codecs, AUDIO_ENCODING_RANKS)

    def as_unusable(self, error: TubeStreamError) -> "FormatDescriptor":
        """Copy of this format marked unusable with the error that caused it."""
        return self.model_copy(update={"unusable_reason": str(error), "error_code": error.error_code})


def _encoding_rank(codecs: list[str], ranks: list[str]) -> int:
    best = -1
    for codec in codecs:
        family = codec.split(".", 1)[0]
        for index, name in enumerate(ranks):
            if family.lower() == name.lower():
                best = max(best, index)
    return best
