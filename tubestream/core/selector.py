"""
Choosing one format from a catalog.
"""

import functools
import logging

from ..errors import SelectionNotFound
from ..models.enums import ContentFilter, QualityTier
from ..models.format import FormatDescriptor
from ..models.policy import SelectionPolicy

logger = logging.getLogger(__name__)

_AUDIO_TIERS = {QualityTier.HIGHEST_AUDIO, QualityTier.LOWEST_AUDIO}
_VIDEO_TIERS = {QualityTier.HIGHEST_VIDEO, QualityTier.LOWEST_VIDEO}


def matches_filter(fmt: FormatDescriptor, content_filter: ContentFilter) -> bool:
    if content_filter == ContentFilter.AUDIO:
        return fmt.has_audio and not fmt.has_video
    if content_filter == ContentFilter.VIDEO:
        return fmt.has_video and not fmt.has_audio
    if content_filter == ContentFilter.AUDIO_VIDEO:
        return fmt.has_audio and fmt.has_video
    return True


def _audio_rate(fmt: FormatDescriptor) -> int:
    if fmt.has_video:
        return (fmt.audio_bitrate or 0) * 1000
    return fmt.bitrate or (fmt.audio_bitrate or 0) * 1000


def _candidates(formats: list[FormatDescriptor], policy: SelectionPolicy) -> list[FormatDescriptor]:
    candidates = [f for f in formats if matches_filter(f, policy.filter)]
    if policy.quality in _AUDIO_TIERS:
        candidates = [f for f in candidates if f.has_audio]
    elif policy.quality in _VIDEO_TIERS:
        candidates = [f for f in candidates if f.has_video]
    if policy.predicate is not None:
        candidates = [f for f in candidates if policy.predicate(f)]

    candidates = [f for f in candidates if f.usable]
    # Live DASH URLs expire quickly; prefer the HLS variants when both exist.
    if any(f.is_hls for f in candidates):
        candidates = [f for f in candidates if f.is_hls or not f.is_live]
    return candidates


def choose_format(formats: list[FormatDescriptor], policy: SelectionPolicy | None = None) -> FormatDescriptor:
    """
    Pick the best format for ``policy``.

    Ties keep catalog order: the earliest of equally ranked formats wins.

    Raises:
        SelectionNotFound: no usable format passes the filters
    """
    policy = policy or SelectionPolicy()
    candidates = _candidates(formats, policy)
    if not candidates:
        raise SelectionNotFound(
            f"No usable format matches quality={policy.quality.value} filter={policy.filter.value}"
        )

    quality = policy.quality
    if quality == QualityTier.HIGHEST:
        chosen = max(candidates, key=lambda f: (f.has_video, f.resolution, f.bitrate))
    elif quality == QualityTier.LOWEST:
        chosen = min(candidates, key=lambda f: (not f.has_video, f.resolution, f.bitrate))
    elif quality == QualityTier.HIGHEST_AUDIO:
        chosen = max(candidates, key=_audio_rate)
    elif quality == QualityTier.LOWEST_AUDIO:
        chosen = min(candidates, key=_audio_rate)
    elif quality == QualityTier.HIGHEST_VIDEO:
        chosen = max(candidates, key=lambda f: (f.resolution, f.bitrate))
    elif quality == QualityTier.LOWEST_VIDEO:
        chosen = min(candidates, key=lambda f: (f.resolution, f.bitrate))
    elif quality == QualityTier.TARGET:
        target = policy.target_height
        chosen = min(candidates, key=lambda f: (abs(f.resolution - target), -f.bitrate))
    elif policy.comparator is not None:
        # sorted() is stable, so equal formats stay in catalog order.
        chosen = sorted(candidates, key=functools.cmp_to_key(policy.comparator))[0]
    else:
        chosen = candidates[0]

    logger.debug("Selected itag %d (%s) for %s", chosen.itag, chosen.quality_label, quality.value)
    return chosen
