"""
Format catalog construction.

Turns the raw ``streamingData`` of a player response into an ordered list of
FormatDescriptor objects: raw records are normalised, ciphered URLs are
deciphered through the evaluator, failures are kept as unusable entries,
live HLS variants are appended and missing content lengths are probed.
"""

import asyncio
import logging
import re
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx

from ..config import get_settings
from ..errors import (
    AssetFetchFailed,
    DecipherFailed,
    ExtractionFailed,
    ManifestParseFailed,
    ProbeFailed,
    TubeStreamError,
)
from ..models.enums import TransformKind
from ..models.format import CipherParams, FormatDescriptor, MimeType
from ..models.player import PlayerAsset
from ..utils.helpers import float_or_none, int_or_none, parse_content_range, update_url_query
from .cipher import require_transform
from .evaluator import SandboxedEvaluator, ScriptEvaluator
from .http_client import HTTPClient
from .m3u8_parser import hls_variants_to_formats, parse_m3u8

logger = logging.getLogger(__name__)

_LIVE_RE = re.compile(r"\bsource[/=]yt_live_broadcast\b")
_HLS_RE = re.compile(r"/manifest/hls_(?:variant|playlist)/")
_DASH_RE = re.compile(r"/manifest/dash/")

# itag to format mapping (common itags), used when a record omits fields
_ITAG_MAP: dict[int, dict[str, Any]] = {
    # Video + Audio (progressive)
    18: {"ext": "mp4", "width": 640, "height": 360, "vcodec": "avc1", "acodec": "mp4a", "abr": 96},
    22: {"ext": "mp4", "width": 1280, "height": 720, "vcodec": "avc1", "acodec": "mp4a", "abr": 192},
    # Video only (adaptive)
    133: {"ext": "mp4", "width": 426, "height": 240, "vcodec": "avc1"},
    134: {"ext": "mp4", "width": 640, "height": 360, "vcodec": "avc1"},
    135: {"ext": "mp4", "width": 854, "height": 480, "vcodec": "avc1"},
    136: {"ext": "mp4", "width": 1280, "height": 720, "vcodec": "avc1"},
    137: {"ext": "mp4", "width": 1920, "height": 1080, "vcodec": "avc1"},
    298: {"ext": "mp4", "width": 1280, "height": 720, "vcodec": "avc1", "fps": 60},
    299: {"ext": "mp4", "width": 1920, "height": 1080, "vcodec": "avc1", "fps": 60},
    264: {"ext": "mp4", "width": 2560, "height": 1440, "vcodec": "avc1"},
    266: {"ext": "mp4", "width": 3840, "height": 2160, "vcodec": "avc1"},
    # VP9 video only
    242: {"ext": "webm", "width": 426, "height": 240, "vcodec": "vp9"},
    243: {"ext": "webm", "width": 640, "height": 360, "vcodec": "vp9"},
    244: {"ext": "webm", "width": 854, "height": 480, "vcodec": "vp9"},
    247: {"ext": "webm", "width": 1280, "height": 720, "vcodec": "vp9"},
    248: {"ext": "webm", "width": 1920, "height": 1080, "vcodec": "vp9"},
    271: {"ext": "webm", "width": 2560, "height": 1440, "vcodec": "vp9"},
    313: {"ext": "webm", "width": 3840, "height": 2160, "vcodec": "vp9"},
    302: {"ext": "webm", "width": 1280, "height": 720, "vcodec": "vp9", "fps": 60},
    303: {"ext": "webm", "width": 1920, "height": 1080, "vcodec": "vp9", "fps": 60},
    308: {"ext": "webm", "width": 2560, "height": 1440, "vcodec": "vp9", "fps": 60},
    315: {"ext": "webm", "width": 3840, "height": 2160, "vcodec": "vp9", "fps": 60},
    # AV1 video only
    394: {"ext": "mp4", "width": 426, "height": 240, "vcodec": "av01"},
    395: {"ext": "mp4", "width": 640, "height": 360, "vcodec": "av01"},
    396: {"ext": "mp4", "width": 854, "height": 480, "vcodec": "av01"},
    397: {"ext": "mp4", "width": 1280, "height": 720, "vcodec": "av01"},
    398: {"ext": "mp4", "width": 1920, "height": 1080, "vcodec": "av01"},
    399: {"ext": "mp4", "width": 2560, "height": 1440, "vcodec": "av01"},
    400: {"ext": "mp4", "width": 3840, "height": 2160, "vcodec": "av01"},
    401: {"ext": "mp4", "width": 7680, "height": 4320, "vcodec": "av01"},
    # Audio only
    139: {"ext": "m4a", "acodec": "mp4a", "abr": 48},
    140: {"ext": "m4a", "acodec": "mp4a", "abr": 128},
    141: {"ext": "m4a", "acodec": "mp4a", "abr": 256},
    171: {"ext": "webm", "acodec": "vorbis", "abr": 128},
    172: {"ext": "webm", "acodec": "vorbis", "abr": 256},
    249: {"ext": "webm", "acodec": "opus", "abr": 50},
    250: {"ext": "webm", "acodec": "opus", "abr": 70},
    251: {"ext": "webm", "acodec": "opus", "abr": 160},
    256: {"ext": "m4a", "acodec": "mp4a", "abr": 192},
    258: {"ext": "m4a", "acodec": "mp4a", "abr": 384},
}


def _query_value(url: str, name: str) -> str | None:
    values = parse_qs(urlparse(url).query).get(name)
    return values[0] if values else None


def parse_raw_format(raw: dict, adaptive: bool, requires_player: bool = True) -> FormatDescriptor | None:
    """
    Normalise one record of ``formats``/``adaptiveFormats``.

    Returns None for records that cannot be described (no itag or mime
    type) or that are DRM protected.
    """
    itag = int_or_none(raw.get("itag"))
    if itag is None or not raw.get("mimeType"):
        return None
    if raw.get("drmFamilies"):
        logger.debug("Skipping DRM protected itag %d", itag)
        return None
    try:
        mime_type = MimeType.parse(raw["mimeType"])
    except ValueError:
        logger.debug("Skipping itag %d with unparseable mime type %r", itag, raw["mimeType"])
        return None

    itag_info = _ITAG_MAP.get(itag, {})
    if not mime_type.codecs:
        mime_type.codecs = [c for c in (itag_info.get("vcodec"), itag_info.get("acodec")) if c]

    if mime_type.type == "audio":
        has_video, has_audio = False, True
    elif mime_type.type == "video":
        has_video = True
        has_audio = len(mime_type.codecs) > 1 or (not adaptive and bool(itag_info.get("acodec")))
    else:
        return None

    audio_bitrate = itag_info.get("abr") if has_audio else None
    if has_audio and not has_video and not audio_bitrate:
        audio_bitrate = int_or_none(raw.get("averageBitrate") or raw.get("bitrate"), scale=1000)

    url = raw.get("url")
    cipher = None
    cipher_query = raw.get("signatureCipher") or raw.get("cipher")
    if not url and cipher_query:
        sc = parse_qs(cipher_query)
        base_url = sc.get("url", [None])[0]
        if not base_url:
            return None
        cipher = CipherParams(
            url=base_url,
            s=sc.get("s", [None])[0],
            sp=sc.get("sp", ["signature"])[0],
            n=_query_value(base_url, "n") if requires_player else None,
        )
    elif url and requires_player and _query_value(url, "n"):
        cipher = CipherParams(url=url, n=_query_value(url, "n"))
        url = None
    elif not url:
        return None

    location = url or cipher.url
    return FormatDescriptor(
        itag=itag,
        mime_type=mime_type,
        bitrate=int_or_none(raw.get("bitrate")) or 0,
        average_bitrate=int_or_none(raw.get("averageBitrate")),
        audio_bitrate=audio_bitrate,
        width=int_or_none(raw.get("width")) or itag_info.get("width"),
        height=int_or_none(raw.get("height")) or itag_info.get("height"),
        fps=float_or_none(raw.get("fps")) or itag_info.get("fps"),
        quality=raw.get("quality"),
        quality_label=raw.get("qualityLabel"),
        audio_quality=raw.get("audioQuality"),
        audio_sample_rate=int_or_none(raw.get("audioSampleRate")),
        audio_channels=int_or_none(raw.get("audioChannels")),
        content_length=int_or_none(raw.get("contentLength")),
        approx_duration_ms=int_or_none(raw.get("approxDurationMs")),
        has_video=has_video,
        has_audio=has_audio,
        is_adaptive=adaptive,
        is_live=bool(_LIVE_RE.search(location)),
        is_hls=bool(_HLS_RE.search(location)),
        is_dash_mpd=bool(_DASH_RE.search(location)),
        url=url,
        cipher=cipher,
    )


async def probe_content_length(http: HTTPClient, url: str) -> int:
    """Learn the size of a stream with a one-byte ranged request."""
    try:
        response = await http.send_stream("GET", url, headers={"Range": "bytes=0-0"})
    except httpx.HTTPError as exc:
        raise ProbeFailed(f"Probe request failed: {exc}") from exc
    try:
        if response.status_code == 206:
            parsed = parse_content_range(response.headers.get("Content-Range"))
            if parsed is None or parsed[2] is None:
                raise ProbeFailed(f"Unusable Content-Range {response.headers.get('Content-Range')!r}")
            return parsed[2]
        if response.status_code == 200:
            length = int_or_none(response.headers.get("Content-Length"))
            if length is None:
                raise ProbeFailed("Response has no Content-Length")
            return length
        raise ProbeFailed(f"Probe returned HTTP {response.status_code}")
    finally:
        await response.aclose()


class CatalogBuilder:
    """Builds the format catalog for one resolution."""

    def __init__(
        self,
        http: HTTPClient,
        evaluator: ScriptEvaluator | None = None,
        probe: bool | None = None,
        probe_concurrency: int | None = None,
    ):
        settings = get_settings()
        self.http = http
        self.evaluator = SandboxedEvaluator() if evaluator is None else evaluator
        self.probe = settings.probe_content_length if probe is None else probe
        self.probe_concurrency = probe_concurrency or settings.probe_concurrency
        self.strict_n_param = settings.strict_n_param

    async def build(
        self,
        player_response: dict,
        asset: PlayerAsset | None,
        requires_player: bool = True,
        asset_error: TubeStreamError | None = None,
        include_hls: bool = True,
    ) -> list[FormatDescriptor]:
        streaming_data = player_response.get("streamingData") or {}
        formats: list[FormatDescriptor] = []

        for raw in streaming_data.get("formats") or []:
            descriptor = parse_raw_format(raw, adaptive=False, requires_player=requires_player)
            if descriptor:
                formats.append(descriptor)
        for raw in streaming_data.get("adaptiveFormats") or []:
            descriptor = parse_raw_format(raw, adaptive=True, requires_player=requires_player)
            if descriptor:
                formats.append(descriptor)

        cache: dict[tuple[TransformKind, str], str] = {}
        formats = [self._decipher(f, asset, asset_error, cache) for f in formats]

        hls_url = streaming_data.get("hlsManifestUrl")
        if include_hls and hls_url:
            formats.extend(await self._hls_formats(hls_url))

        if self.probe:
            await self._probe_missing(formats)

        unusable = sum(1 for f in formats if not f.usable)
        logger.info("Catalog built: %d formats (%d unusable)", len(formats), unusable)
        return formats

    # ------------------------------------------------------------------
    # Deciphering
    # ------------------------------------------------------------------

    def _transform(
        self,
        kind: TransformKind,
        asset: PlayerAsset,
        argument: str,
        cache: dict[tuple[TransformKind, str], str],
    ) -> str:
        key = (kind, argument)
        if key in cache:
            return cache[key]
        result = self.evaluator.evaluate(require_transform(asset.transforms, kind), argument)
        if kind == TransformKind.N_PARAM and (
            result == argument or result.endswith(argument) or result.startswith("enhanced_except")
        ):
            raise DecipherFailed(f"n transform returned an invalid value for {argument!r}")
        cache[key] = result
        return result

    def _decipher(
        self,
        descriptor: FormatDescriptor,
        asset: PlayerAsset | None,
        asset_error: TubeStreamError | None,
        cache: dict[tuple[TransformKind, str], str],
    ) -> FormatDescriptor:
        if not descriptor.requires_decipher:
            return descriptor
        if asset is None:
            error = asset_error or AssetFetchFailed("No player script available")
            logger.warning("itag %d needs deciphering but no player is available", descriptor.itag)
            return descriptor.as_unusable(error)

        cipher = descriptor.cipher
        url = cipher.url
        try:
            if cipher.s is not None:
                signature = self._transform(TransformKind.SIGNATURE, asset, cipher.s, cache)
                url = update_url_query(url, **{cipher.sp: signature})
        except (ExtractionFailed, DecipherFailed) as exc:
            logger.warning("Signature decipher failed for itag %d: %s", descriptor.itag, exc)
            return descriptor.as_unusable(exc)

        if cipher.n is not None:
            try:
                url = update_url_query(url, n=self._transform(TransformKind.N_PARAM, asset, cipher.n, cache))
            except (ExtractionFailed, DecipherFailed) as exc:
                if self.strict_n_param:
                    logger.warning("n transform failed for itag %d: %s", descriptor.itag, exc)
                    return descriptor.as_unusable(exc)
                logger.warning("n transform failed for itag %d, keeping throttled URL: %s", descriptor.itag, exc)

        return descriptor.model_copy(update={"url": url, "cipher": None})

    # ------------------------------------------------------------------
    # HLS and probing
    # ------------------------------------------------------------------

    async def _hls_formats(self, manifest_url: str) -> list[FormatDescriptor]:
        try:
            text = await self.http.get_text(manifest_url)
            playlist = parse_m3u8(text, manifest_url)
        except (httpx.HTTPError, ManifestParseFailed) as exc:
            logger.warning("Could not load HLS manifest %s: %s", manifest_url, exc)
            return []
        return hls_variants_to_formats(playlist)

    async def _probe_missing(self, formats: list[FormatDescriptor]):
        semaphore = asyncio.Semaphore(self.probe_concurrency)

        async def probe(index: int):
            async with semaphore:
                try:
                    length = await probe_content_length(self.http, formats[index].url)
                except ProbeFailed as exc:
                    logger.warning("Content length probe failed for itag %d: %s", formats[index].itag, exc)
                    return
                formats[index] = formats[index].model_copy(update={"content_length": length})

        targets = [
            i
            for i, f in enumerate(formats)
            if f.usable and f.content_length is None and not f.is_hls and not f.is_live
        ]
        if targets:
            await asyncio.gather(*(probe(i) for i in targets))
