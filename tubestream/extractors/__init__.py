"""
Page extractors: turn a video ID into the bootstrap data the format catalog is
built from.
"""

from .base import BaseExtractor, ExtractionError, PlayerPage
from .youtube import YouTubeExtractor, check_playability, is_age_restricted, parse_video_details

__all__ = [
    "BaseExtractor",
    "ExtractionError",
    "PlayerPage",
    "YouTubeExtractor",
    "check_playability",
    "is_age_restricted",
    "parse_video_details",
]
