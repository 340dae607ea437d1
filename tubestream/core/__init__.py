"""Core machinery: HTTP, player scripts, cipher extraction, catalogs and selection."""

from .catalog import CatalogBuilder, parse_raw_format, probe_content_length
from .cipher import extract_transforms, find_transform
from .evaluator import SandboxedEvaluator, ScriptEvaluator
from .http_client import HTTPClient
from .player_cache import PlayerAssetStore, get_player_store
from .selector import choose_format
from .url_matcher import parse_video_id

__all__ = [
    "CatalogBuilder",
    "HTTPClient",
    "PlayerAssetStore",
    "SandboxedEvaluator",
    "ScriptEvaluator",
    "choose_format",
    "extract_transforms",
    "find_transform",
    "get_player_store",
    "parse_raw_format",
    "parse_video_id",
    "probe_content_length",
]
