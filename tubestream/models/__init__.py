from .enums import ContentFilter, FormatType, QualityTier, StreamState, TransformKind
from .format import CipherParams, FormatDescriptor, MimeType
from .player import CipherTransform, CipherTransforms, PlayerAsset
from .policy import SelectionPolicy
from .request import ResolveOptions, SelectRequest
from .response import ErrorResponse, Thumbnail, VideoDetails, VideoInfo

__all__ = [
    "CipherParams",
    "CipherTransform",
    "CipherTransforms",
    "ContentFilter",
    "ErrorResponse",
    "FormatDescriptor",
    "FormatType",
    "MimeType",
    "PlayerAsset",
    "QualityTier",
    "ResolveOptions",
    "SelectRequest",
    "SelectionPolicy",
    "StreamState",
    "Thumbnail",
    "TransformKind",
    "VideoDetails",
    "VideoInfo",
]
