"""TubeStream: YouTube stream resolution, format selection and resumable streaming."""

from .config import get_settings
from .core.selector import choose_format
from .errors import (
    AssetFetchFailed,
    DecipherFailed,
    ExtractionFailed,
    ManifestParseFailed,
    ProbeFailed,
    SegmentDecryptFailed,
    SelectionNotFound,
    StreamUnavailable,
    TransferFailed,
    TubeStreamError,
    UnavailableReason,
)
from .models import ContentFilter, FormatDescriptor, QualityTier, ResolveOptions, SelectionPolicy, VideoInfo
from .streams import download_to_sink, open_stream
from .video import Video

__all__ = [
    "AssetFetchFailed",
    "ContentFilter",
    "DecipherFailed",
    "ExtractionFailed",
    "FormatDescriptor",
    "ManifestParseFailed",
    "ProbeFailed",
    "QualityTier",
    "ResolveOptions",
    "SegmentDecryptFailed",
    "SelectionNotFound",
    "SelectionPolicy",
    "StreamUnavailable",
    "TransferFailed",
    "TubeStreamError",
    "UnavailableReason",
    "Video",
    "VideoInfo",
    "choose_format",
    "download_to_sink",
    "get_settings",
    "open_stream",
]
