"""
Process-wide store of player scripts, keyed by player version.

A version is fetched and analysed at most once. Concurrent requests for a
version that is still being fetched share the same in-flight fetch. A failed
fetch is not remembered, so the next request tries again.
"""

import asyncio
import functools
import logging

import httpx

from ..errors import AssetFetchFailed
from ..models.player import PlayerAsset
from .cipher import extract_transforms, player_version, signature_timestamp
from .http_client import HTTPClient

logger = logging.getLogger(__name__)


class PlayerAssetStore:
    def __init__(self):
        self._assets: dict[str, PlayerAsset] = {}
        self._inflight: dict[str, asyncio.Future] = {}

    def __contains__(self, version: str) -> bool:
        return version in self._assets

    def __len__(self) -> int:
        return len(self._assets)

    def preload(self, asset: PlayerAsset):
        """Insert an already-built asset, e.g. one loaded from disk."""
        self._assets[asset.version] = asset

    def clear(self):
        self._assets.clear()

    async def get(self, player_url: str, http: HTTPClient) -> PlayerAsset:
        version = player_version(player_url)
        asset = self._assets.get(version)
        if asset is not None:
            return asset

        task = self._inflight.get(version)
        if task is None:
            task = asyncio.ensure_future(self._load(version, player_url, http))
            self._inflight[version] = task
            task.add_done_callback(functools.partial(self._settle, version))
        # Shielded so one cancelled waiter does not cancel the fetch for the others.
        return await asyncio.shield(task)

    def _settle(self, version: str, task: asyncio.Future):
        self._inflight.pop(version, None)
        # Retrieved here as well, in case every waiter was cancelled.
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Player %s fetch failed: %s", version, task.exception())

    async def _load(self, version: str, player_url: str, http: HTTPClient) -> PlayerAsset:
        logger.info("Fetching player %s", version)
        try:
            response = await http.get(player_url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise AssetFetchFailed(f"Could not fetch player {version}: {exc}") from exc

        script = response.text
        transforms = extract_transforms(script)
        asset = PlayerAsset(
            version=version,
            url=player_url,
            script=script,
            signature_timestamp=signature_timestamp(script),
            transforms=transforms,
        )
        self._assets[version] = asset
        logger.info(
            "Player %s ready (signature=%s, n=%s)",
            version,
            transforms.signature.name if transforms.signature else None,
            transforms.n_param.name if transforms.n_param else None,
        )
        return asset


_store: PlayerAssetStore | None = None


def get_player_store() -> PlayerAssetStore:
    global _store
    if _store is None:
        _store = PlayerAssetStore()
    return _store
