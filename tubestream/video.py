"""
The Video facade: resolves one video into a format catalog, picks a format
and opens its byte stream.

    async with Video("https://youtu.be/dQw4w9WgXcQ") as video:
        info = await video.get_info()
        fmt = await video.choose(SelectionPolicy(quality=QualityTier.HIGHEST_AUDIO,
                                                 filter=ContentFilter.AUDIO))
        async for chunk in await video.stream(fmt):
            ...
"""

import logging
from typing import Any

from .core.catalog import CatalogBuilder
from .core.evaluator import ScriptEvaluator
from .core.http_client import HTTPClient
from .core.player_cache import PlayerAssetStore, get_player_store
from .core.selector import choose_format
from .core.url_matcher import parse_video_id
from .errors import AssetFetchFailed, TubeStreamError
from .extractors.base import BaseExtractor, PlayerPage
from .extractors.youtube import YouTubeExtractor, parse_video_details
from .models.format import FormatDescriptor
from .models.player import PlayerAsset
from .models.policy import SelectionPolicy
from .models.request import ResolveOptions
from .models.response import VideoInfo
from .streams import ChunkStream, download_to_sink, open_stream

logger = logging.getLogger(__name__)


class Video:
    def __init__(
        self,
        url_or_id: str,
        options: ResolveOptions | None = None,
        *,
        http: HTTPClient | None = None,
        player_store: PlayerAssetStore | None = None,
        evaluator: ScriptEvaluator | None = None,
        extractor: BaseExtractor | None = None,
    ):
        self.video_id = parse_video_id(url_or_id)
        self.options = options or ResolveOptions()
        self._owns_http = http is None
        if http is None:
            http = HTTPClient(
                headers=self.options.headers,
                cookies=self.options.cookies,
                proxy=self.options.proxy,
            )
        self.http = http
        self.player_store = get_player_store() if player_store is None else player_store
        self.extractor = YouTubeExtractor(http=self.http) if extractor is None else extractor
        self.catalog_builder = CatalogBuilder(
            self.http,
            evaluator=evaluator,
            probe=self.options.probe_content_length,
        )
        self._info: VideoInfo | None = None

    async def get_info(self) -> VideoInfo:
        """Fetch the page, the player script and build the format catalog. Cached."""
        if self._info is not None:
            return self._info

        page = await self.extractor.fetch_page(self.video_id)
        asset, asset_error = await self._player_asset(page)

        formats = await self.catalog_builder.build(
            page.player_response,
            asset,
            requires_player=page.requires_player,
            asset_error=asset_error,
            include_hls=self.options.include_hls,
        )
        streaming_data = page.player_response.get("streamingData") or {}
        self._info = VideoInfo(
            video_id=self.video_id,
            details=parse_video_details(page.player_response, page.age_restricted),
            formats=formats,
            player_url=page.player_url,
            hls_manifest_url=streaming_data.get("hlsManifestUrl"),
            dash_manifest_url=streaming_data.get("dashManifestUrl"),
        )
        return self._info

    async def _player_asset(self, page: PlayerPage) -> tuple[PlayerAsset | None, TubeStreamError | None]:
        if not page.requires_player:
            return None, None
        if not page.player_url:
            return None, AssetFetchFailed(f"No player script URL on the page of {self.video_id}")
        try:
            return await self.player_store.get(page.player_url, self.http), None
        except TubeStreamError as e:
            # Formats that need deciphering become unusable; plain URLs still work.
            logger.warning("Player script unavailable for %s: %s", self.video_id, e)
            return None, e

    async def choose(self, policy: SelectionPolicy | None = None) -> FormatDescriptor:
        info = await self.get_info()
        return choose_format(info.formats, policy)

    async def stream(
        self,
        fmt: FormatDescriptor | SelectionPolicy | None = None,
        **kwargs: Any,
    ) -> ChunkStream:
        """Open the stream for ``fmt``, or for the format ``fmt`` selects."""
        if not isinstance(fmt, FormatDescriptor):
            fmt = await self.choose(fmt)
        logger.info("Streaming itag %d of %s", fmt.itag, self.video_id)
        return open_stream(fmt, http=self.http, **kwargs)

    async def download(
        self,
        sink: Any,
        fmt: FormatDescriptor | SelectionPolicy | None = None,
        **kwargs: Any,
    ) -> int:
        """Write the whole stream to ``sink``; returns the number of bytes written."""
        stream = await self.stream(fmt, **kwargs)
        return await download_to_sink(stream, sink)

    async def close(self):
        if self._owns_http:
            await self.http.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()
