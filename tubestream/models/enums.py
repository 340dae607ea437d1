from enum import Enum


class FormatType(str, Enum):
    VIDEO_ONLY = "video_only"
    AUDIO_ONLY = "audio_only"
    COMBINED = "combined"


class QualityTier(str, Enum):
    HIGHEST = "highest"
    LOWEST = "lowest"
    HIGHEST_AUDIO = "highest_audio"
    LOWEST_AUDIO = "lowest_audio"
    HIGHEST_VIDEO = "highest_video"
    LOWEST_VIDEO = "lowest_video"
    TARGET = "target"
    CUSTOM = "custom"


class ContentFilter(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"
    AUDIO_VIDEO = "audio_video"
    ANY = "any"


class TransformKind(str, Enum):
    SIGNATURE = "signature"
    N_PARAM = "n_param"


class StreamState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    MANIFEST_POLL = "manifest_poll"
    SEGMENT_FETCH = "segment_fetch"
    COMPLETE = "complete"
    ENDED = "ended"
    FAILED = "failed"
    CLOSED = "closed"
