"""
HLS (M3U8) playlist parser.
Ported from yt-dlp's hls downloader and cobalt's internal-hls.js.

Parses both master playlists (variant streams) and media playlists
(segment lists). Media segments carry everything the live stream needs to
fetch them on their own: sequence numbers, the key in force, the init
section in force and byte ranges.
"""

import logging
import re
from urllib.parse import urljoin

from ..errors import ManifestParseFailed
from ..models.format import FormatDescriptor, MimeType
from ..utils.helpers import float_or_none, int_or_none, parse_m3u8_attributes

logger = logging.getLogger(__name__)

_ITAG_IN_URL_RE = re.compile(r"/itag/(\d+)/")


def _absolute(url: str, base_url: str) -> str:
    if url and not url.startswith("http"):
        return urljoin(base_url, url)
    return url


def _parse_byte_range(value: str, previous_end: int | None) -> tuple[int, int]:
    """``length[@offset]`` -> (offset, length). Offset defaults to the previous end."""
    length, _, offset = value.partition("@")
    if offset:
        start = int(offset)
    elif previous_end is not None:
        start = previous_end
    else:
        start = 0
    return start, int(length)


class HLSVariant:
    """Represents a variant stream in an HLS master playlist."""

    def __init__(
        self,
        url: str,
        bandwidth: int | None = None,
        width: int | None = None,
        height: int | None = None,
        codecs: str | None = None,
        frame_rate: float | None = None,
        audio_group: str | None = None,
        subtitle_group: str | None = None,
    ):
        self.url = url
        self.bandwidth = bandwidth
        self.width = width
        self.height = height
        self.codecs = codecs
        self.frame_rate = frame_rate
        self.audio_group = audio_group
        self.subtitle_group = subtitle_group


class HLSKey:
    """An ``#EXT-X-KEY`` entry."""

    def __init__(
        self,
        method: str,
        uri: str | None = None,
        iv: str | None = None,
        keyformat: str = "identity",
    ):
        self.method = method
        self.uri = uri
        self.iv = iv
        self.keyformat = keyformat

    def __eq__(self, other):
        if not isinstance(other, HLSKey):
            return NotImplemented
        return (self.method, self.uri, self.iv, self.keyformat) == (
            other.method,
            other.uri,
            other.iv,
            other.keyformat,
        )

    def __hash__(self):
        return hash((self.method, self.uri, self.iv, self.keyformat))

    def __repr__(self):
        return f"HLSKey(method={self.method!r}, uri={self.uri!r}, iv={self.iv!r})"


class HLSInitSection:
    """An ``#EXT-X-MAP`` entry."""

    def __init__(self, url: str, byte_range: tuple[int, int] | None = None):
        self.url = url
        self.byte_range = byte_range

    def __eq__(self, other):
        if not isinstance(other, HLSInitSection):
            return NotImplemented
        return (self.url, self.byte_range) == (other.url, other.byte_range)

    def __hash__(self):
        return hash((self.url, self.byte_range))


class HLSSegment:
    """Represents a segment in an HLS media playlist."""

    def __init__(
        self,
        url: str,
        duration: float,
        title: str | None = None,
        byte_range: tuple[int, int] | None = None,
        sequence: int = 0,
        discontinuity_sequence: int = 0,
        key: HLSKey | None = None,
        init_section: HLSInitSection | None = None,
    ):
        self.url = url
        self.duration = duration
        self.title = title
        self.byte_range = byte_range
        self.sequence = sequence
        self.discontinuity_sequence = discontinuity_sequence
        self.key = key
        self.init_section = init_section

    @property
    def ident(self) -> tuple[int, int]:
        """Position in the stream; orders segments across discontinuities."""
        return self.discontinuity_sequence, self.sequence

    @property
    def id(self) -> str:
        return f"d{self.discontinuity_sequence:010}s{self.sequence:010}"

    def __repr__(self):
        return f"HLSSegment({self.id}, {self.url!r})"


def range_header(byte_range: tuple[int, int] | None) -> dict[str, str]:
    if byte_range is None:
        return {}
    start, length = byte_range
    return {"Range": f"bytes={start}-{start + length - 1}"}


class HLSPlaylist:
    """Parsed HLS playlist."""

    def __init__(self):
        self.is_master: bool = False
        self.variants: list[HLSVariant] = []
        self.segments: list[HLSSegment] = []
        self.media_groups: dict[str, list[dict]] = {}
        self.target_duration: float | None = None
        self.total_duration: float = 0.0
        self.media_sequence: int = 0
        self.discontinuity_sequence: int = 0
        self.is_endlist: bool = False

    @property
    def is_live(self) -> bool:
        return not self.is_endlist

    def best_variant(self) -> HLSVariant | None:
        if not self.variants:
            return None
        return max(self.variants, key=lambda v: (v.height or 0, v.bandwidth or 0))


def parse_m3u8(content: str, base_url: str = "") -> HLSPlaylist:
    """
    Parse an M3U8 playlist (master or media).

    Args:
        content: The M3U8 playlist content
        base_url: Base URL for resolving relative URLs

    Returns:
        HLSPlaylist with parsed data

    Raises:
        ManifestParseFailed: missing header or malformed tags
    """
    playlist = HLSPlaylist()
    lines = content.strip().splitlines()

    if not lines or not lines[0].strip().startswith("#EXTM3U"):
        raise ManifestParseFailed("Content does not start with #EXTM3U")

    # Check if this is a master playlist
    has_stream_inf = any(line.strip().startswith("#EXT-X-STREAM-INF:") for line in lines)
    playlist.is_master = has_stream_inf

    try:
        if has_stream_inf:
            _parse_master_playlist(lines, base_url, playlist)
        else:
            _parse_media_playlist(lines, base_url, playlist)
    except ValueError as exc:
        raise ManifestParseFailed(f"Malformed playlist: {exc}") from exc

    return playlist


def _parse_master_playlist(lines: list[str], base_url: str, playlist: HLSPlaylist):
    """Parse a master (variant) playlist."""
    i = 0
    while i < len(lines):
        line = lines[i].strip()

        if line.startswith("#EXT-X-STREAM-INF:"):
            attrs = parse_m3u8_attributes(line.split(":", 1)[1])

            # Next non-comment line is the URL
            url = ""
            j = i + 1
            while j < len(lines):
                next_line = lines[j].strip()
                if next_line and not next_line.startswith("#"):
                    url = next_line
                    break
                j += 1

            url = _absolute(url, base_url)

            # Parse resolution
            width = None
            height = None
            resolution = attrs.get("RESOLUTION", "")
            if "x" in resolution:
                parts = resolution.split("x")
                width = int_or_none(parts[0])
                height = int_or_none(parts[1])

            variant = HLSVariant(
                url=url,
                bandwidth=int_or_none(attrs.get("BANDWIDTH")),
                width=width,
                height=height,
                codecs=attrs.get("CODECS"),
                frame_rate=float_or_none(attrs.get("FRAME-RATE")),
                audio_group=attrs.get("AUDIO"),
                subtitle_group=attrs.get("SUBTITLES"),
            )
            playlist.variants.append(variant)
            i = j

        elif line.startswith("#EXT-X-MEDIA:"):
            attrs = parse_m3u8_attributes(line.split(":", 1)[1])
            group_id = attrs.get("GROUP-ID", "")

            media_info = {
                "type": attrs.get("TYPE", ""),
                "group_id": group_id,
                "name": attrs.get("NAME", ""),
                "language": attrs.get("LANGUAGE", ""),
                "url": _absolute(attrs.get("URI", ""), base_url),
                "default": attrs.get("DEFAULT", "NO") == "YES",
                "autoselect": attrs.get("AUTOSELECT", "NO") == "YES",
            }
            playlist.media_groups.setdefault(group_id, []).append(media_info)

        i += 1


def _parse_media_playlist(lines: list[str], base_url: str, playlist: HLSPlaylist):
    """Parse a media (segment) playlist."""
    current_duration: float | None = None
    current_title = None
    current_range: tuple[int, int] | None = None
    current_key: HLSKey | None = None
    current_init: HLSInitSection | None = None
    discontinuity = 0
    sequence = 0
    # Where the last byte range ended, per URI, for ranges without an offset.
    range_ends: dict[str, int] = {}
    pending_range: str | None = None

    for line in lines:
        line = line.strip()

        if line.startswith("#EXT-X-TARGETDURATION:"):
            playlist.target_duration = float_or_none(line.split(":", 1)[1])

        elif line.startswith("#EXT-X-MEDIA-SEQUENCE:"):
            sequence = playlist.media_sequence = int(line.split(":", 1)[1])

        elif line.startswith("#EXT-X-DISCONTINUITY-SEQUENCE:"):
            discontinuity = playlist.discontinuity_sequence = int(line.split(":", 1)[1])

        elif line == "#EXT-X-DISCONTINUITY":
            discontinuity += 1

        elif line.startswith("#EXT-X-KEY:"):
            attrs = parse_m3u8_attributes(line.split(":", 1)[1])
            method = attrs.get("METHOD", "NONE")
            if method == "NONE":
                current_key = None
            else:
                uri = attrs.get("URI")
                current_key = HLSKey(
                    method=method,
                    uri=_absolute(uri, base_url) if uri else None,
                    iv=attrs.get("IV"),
                    keyformat=attrs.get("KEYFORMAT", "identity"),
                )

        elif line.startswith("#EXT-X-MAP:"):
            attrs = parse_m3u8_attributes(line.split(":", 1)[1])
            map_url = _absolute(attrs.get("URI", ""), base_url)
            map_range = None
            if attrs.get("BYTERANGE"):
                map_range = _parse_byte_range(attrs["BYTERANGE"], None)
            current_init = HLSInitSection(map_url, map_range)

        elif line.startswith("#EXT-X-BYTERANGE:"):
            pending_range = line.split(":", 1)[1]

        elif line.startswith("#EXTINF:"):
            parts = line.split(":", 1)[1]
            duration, _, title = parts.partition(",")
            try:
                current_duration = float(duration)
            except ValueError as exc:
                raise ManifestParseFailed(f"Bad #EXTINF duration {duration!r}") from exc
            current_title = title.strip() or None

        elif line.startswith("#EXT-X-ENDLIST"):
            playlist.is_endlist = True

        elif line and not line.startswith("#"):
            if current_duration is None:
                raise ManifestParseFailed(f"Segment {line!r} has no #EXTINF")
            url = _absolute(line, base_url)

            if pending_range is not None:
                current_range = _parse_byte_range(pending_range, range_ends.get(url))
                range_ends[url] = current_range[0] + current_range[1]
                pending_range = None

            segment = HLSSegment(
                url=url,
                duration=current_duration,
                title=current_title,
                byte_range=current_range,
                sequence=sequence,
                discontinuity_sequence=discontinuity,
                key=current_key,
                init_section=current_init,
            )
            playlist.segments.append(segment)
            playlist.total_duration += current_duration
            sequence += 1
            current_duration = None
            current_title = None
            current_range = None


def hls_variants_to_formats(playlist: HLSPlaylist) -> list[FormatDescriptor]:
    """Turn the variants of a master playlist into live format descriptors."""
    formats = []

    for variant in playlist.variants:
        match = _ITAG_IN_URL_RE.search(variant.url)
        if not match:
            logger.debug("Skipping HLS variant without an itag: %s", variant.url)
            continue

        codecs = [c.strip() for c in (variant.codecs or "").split(",") if c.strip()]
        has_video = any(c.startswith(("avc", "hvc", "hev", "vp", "av01")) for c in codecs)
        has_audio = any(c.startswith(("mp4a", "opus", "flac", "vorb", "ac-3", "ec-3")) for c in codecs)
        if not codecs:
            has_video = has_audio = True

        height = variant.height
        formats.append(
            FormatDescriptor(
                itag=int(match.group(1)),
                mime_type=MimeType(
                    type="video" if has_video else "audio",
                    container="ts",
                    codecs=codecs,
                ),
                bitrate=variant.bandwidth or 0,
                width=variant.width,
                height=height,
                fps=variant.frame_rate,
                quality_label=f"{height}p" if height else None,
                has_video=has_video,
                has_audio=has_audio,
                is_adaptive=not (has_video and has_audio),
                is_live=True,
                is_hls=True,
                url=variant.url,
            )
        )

    return formats
