"""
API route definitions for the TubeStream API.
"""

import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from ..config import get_settings
from ..errors import SelectionNotFound, StreamUnavailable, TubeStreamError, UnavailableReason
from ..models.format import FormatDescriptor
from ..models.request import SelectRequest
from ..models.response import ErrorResponse, VideoInfo
from ..streams import ChunkStream
from ..video import Video

logger = logging.getLogger(__name__)

router = APIRouter()

_NOT_FOUND_REASONS = {UnavailableReason.UNAVAILABLE, UnavailableReason.NOT_YET_LIVE}

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Not a video URL or ID"},
    403: {"model": ErrorResponse, "description": "Video is private, age-restricted, region-locked or a rental"},
    404: {"model": ErrorResponse, "description": "Video or matching format not found"},
    422: {"model": ErrorResponse, "description": "Validation error"},
    502: {"model": ErrorResponse, "description": "Upstream failure"},
}


def _error(status_code: int, message: str, error_code: str | None) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"success": False, "error": message, "error_code": error_code},
    )


def _http_error(exc: TubeStreamError) -> HTTPException:
    if isinstance(exc, StreamUnavailable):
        status_code = 404 if exc.reason in _NOT_FOUND_REASONS else 403
    elif isinstance(exc, SelectionNotFound):
        status_code = 404
    else:
        status_code = 502
    return _error(status_code, str(exc), exc.error_code)


def get_video(video: str) -> Video:
    """Build the Video for a path parameter holding an ID or URL."""
    try:
        return Video(video)
    except ValueError as e:
        raise _error(400, str(e), "url.invalid")


def _policy(params: SelectRequest):
    try:
        return params.to_policy()
    except ValidationError as e:
        raise _error(422, str(e), "request.invalid")


@router.get(
    "/info/{video}",
    response_model=VideoInfo,
    responses=_ERROR_RESPONSES,
    summary="Resolve a video's metadata and format catalog",
)
async def video_info(video: Video = Depends(get_video)):
    try:
        return await video.get_info()
    except TubeStreamError as e:
        raise _http_error(e)
    finally:
        await video.close()


@router.get(
    "/choose/{video}",
    response_model=FormatDescriptor,
    responses=_ERROR_RESPONSES,
    summary="Pick the format matching a quality tier and content filter",
)
async def choose(params: SelectRequest = Depends(), video: Video = Depends(get_video)):
    policy = _policy(params)
    try:
        return await video.choose(policy)
    except TubeStreamError as e:
        raise _http_error(e)
    finally:
        await video.close()


async def _relay(video: Video, stream: ChunkStream, first: bytes | None) -> AsyncIterator[bytes]:
    try:
        if first:
            yield first
        while True:
            data = await stream.chunk()
            if data is None:
                break
            yield data
    except TubeStreamError as e:
        # Headers are already sent; the client sees a truncated body.
        logger.error("Stream of %s failed after %d bytes: %s", video.video_id, stream.bytes_delivered, e)
    finally:
        await stream.aclose()
        await video.close()


@router.get(
    "/stream/{video}",
    responses=_ERROR_RESPONSES,
    summary="Stream the bytes of the selected format",
    description=(
        "Resolves the video, selects a format and relays its bytes. Progressive formats "
        "are fetched in ranged windows with resume; live formats follow the HLS playlist."
    ),
)
async def stream_video(params: SelectRequest = Depends(), video: Video = Depends(get_video)):
    policy = _policy(params)
    try:
        fmt = await video.choose(policy)
        stream = await video.stream(fmt)
    except TubeStreamError as e:
        await video.close()
        raise _http_error(e)

    # Pull the first chunk here so an immediate failure becomes an HTTP error.
    try:
        first = await stream.chunk()
    except TubeStreamError as e:
        await stream.aclose()
        await video.close()
        raise _http_error(e)

    headers = {"Cache-Control": "no-store", "X-Itag": str(fmt.itag)}
    if fmt.content_length and not fmt.is_hls:
        headers["Content-Length"] = str(fmt.content_length)
    return StreamingResponse(
        _relay(video, stream, first),
        media_type=f"{fmt.mime_type.type}/{fmt.mime_type.container}",
        headers=headers,
    )


@router.get(
    "/health",
    summary="Health check",
    description="Check the health of the API and report the active stream settings.",
)
async def health_check():
    """Health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "settings": {
            "max_retries": settings.max_retries,
            "dl_chunk_size": settings.dl_chunk_size,
            "probe_content_length": settings.probe_content_length,
            "strict_n_param": settings.strict_n_param,
        },
    }
