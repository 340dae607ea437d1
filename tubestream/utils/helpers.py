"""
General utility functions used across the resolver.
Ported from yt-dlp's utils.py.
"""

import re
from datetime import datetime
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

_CONTENT_RANGE_RE = re.compile(r"^bytes\s+(\d+)-(\d+)/(\d+|\*)$")


def traverse_obj(obj: Any, *paths: Any, default: Any = None) -> Any:
    """
    Traverse nested dicts/lists safely.
    Ported from yt-dlp's traverse_obj utility.

    Usage:
        traverse_obj(data, 'key1', 'key2', 'key3')
        traverse_obj(data, ('key1', 'key2'), ('alt_key1', 'alt_key2'))
    """
    for path in paths:
        if isinstance(path, (list, tuple)):
            result = obj
            for key in path:
                if result is None:
                    break
                if isinstance(result, dict):
                    result = result.get(key)
                elif isinstance(result, (list, tuple)):
                    try:
                        result = result[key]
                    except (IndexError, TypeError):
                        result = None
                else:
                    result = None
            if result is not None:
                return result
        else:
            if isinstance(obj, dict) and path in obj:
                return obj[path]
    return default


def int_or_none(v: Any, scale: int = 1) -> int | None:
    """Convert value to int or return None."""
    if v is None:
        return None
    try:
        return int(v) // scale
    except (ValueError, TypeError):
        return None


def float_or_none(v: Any, scale: float = 1.0) -> float | None:
    """Convert value to float or return None."""
    if v is None:
        return None
    try:
        return float(v) / scale
    except (ValueError, TypeError):
        return None


def url_or_none(v: Any) -> str | None:
    """Validate and return URL or None."""
    if not v or not isinstance(v, str):
        return None
    v = v.strip()
    if v.startswith(("http://", "https://")):
        return v
    if v.startswith("//"):
        return f"https:{v}"
    return None


def format_date(date_str: str | None) -> str | None:
    """Normalise ISO dates (with or without time) to YYYY-MM-DD."""
    if not date_str:
        return None
    date_str = date_str.strip()
    for fmt in ("%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%d", "%Y%m%d"):
        try:
            return datetime.strptime(date_str, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    return None


def update_url_query(url: str, **params: str) -> str:
    """Replace (or add) query parameters, keeping the order of the others."""
    parsed = urlparse(url)
    query = parse_qsl(parsed.query, keep_blank_values=True)
    replaced = set()
    updated = []
    for key, value in query:
        if key in params:
            if key in replaced:
                continue
            updated.append((key, params[key]))
            replaced.add(key)
        else:
            updated.append((key, value))
    updated.extend((k, v) for k, v in params.items() if k not in replaced)
    return urlunparse(parsed._replace(query=urlencode(updated)))


def parse_content_range(header: str | None) -> tuple[int, int, int | None] | None:
    """
    Parse a ``Content-Range: bytes first-last/total`` header.

    Returns (first, last, total) with total None when the server sent ``*``.
    """
    if not header:
        return None
    match = _CONTENT_RANGE_RE.match(header.strip())
    if not match:
        return None
    total = match.group(3)
    return int(match.group(1)), int(match.group(2)), None if total == "*" else int(total)


def parse_m3u8_attributes(line: str) -> dict[str, str]:
    """Parse M3U8 attribute list (key=value pairs)."""
    attrs = {}
    # Match KEY=VALUE or KEY="VALUE"
    for match in re.finditer(r'(?:^|,)([A-Z0-9-]+)=(?:"([^"]*?)"|([^,]*))', line):
        key = match.group(1)
        value = match.group(2) if match.group(2) is not None else match.group(3)
        attrs[key] = value
    return attrs
