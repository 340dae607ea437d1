"""
Error taxonomy shared by every stage of stream resolution.

Each error carries a machine-readable ``error_code`` so that failures recorded
on a format (an unusable descriptor) can be raised again later with the same
kind, and so the API layer can report them without guessing.
"""

from enum import Enum


class TubeStreamError(Exception):
    """Base class for all resolution and transfer failures."""

    error_code = "tubestream.error"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        # Recoverable errors leave the stream usable: the next pull continues.
        self.recoverable = recoverable


class AssetFetchFailed(TubeStreamError):
    """The player script could not be downloaded."""

    error_code = "player.fetch_failed"


class ExtractionFailed(TubeStreamError):
    """No matcher located a transform function in the player script."""

    error_code = "cipher.extraction_failed"


class DecipherFailed(TubeStreamError):
    """A transform raised, returned garbage, or exceeded its budget."""

    error_code = "cipher.decipher_failed"


class ProbeFailed(TubeStreamError):
    """The content-length probe request failed."""

    error_code = "format.probe_failed"


class SelectionNotFound(TubeStreamError):
    """No usable format satisfies the selection policy."""

    error_code = "format.not_found"


class TransferFailed(TubeStreamError):
    """A transfer failed for a non-transient reason or exhausted its retries."""

    error_code = "transfer.failed"


class SegmentDecryptFailed(TubeStreamError):
    """An HLS segment could not be decrypted."""

    error_code = "hls.decrypt_failed"


class ManifestParseFailed(TubeStreamError):
    """An HLS playlist was not valid M3U8."""

    error_code = "hls.manifest_parse_failed"


class UnavailableReason(str, Enum):
    UNAVAILABLE = "unavailable"
    PRIVATE = "private"
    AGE_RESTRICTED = "age_restricted"
    REGION_LOCKED = "region_locked"
    RENTAL = "rental"
    NOT_YET_LIVE = "not_yet_live"
    LOGIN_REQUIRED = "login_required"


class StreamUnavailable(TubeStreamError):
    """The video cannot be played at all. Not retried."""

    error_code = "video.unavailable"

    def __init__(self, message: str, reason: UnavailableReason = UnavailableReason.UNAVAILABLE):
        super().__init__(message, error_code=f"video.{reason.value}")
        self.reason = reason


_ERRORS_BY_CODE: dict[str, type[TubeStreamError]] = {
    cls.error_code: cls
    for cls in (
        AssetFetchFailed,
        ExtractionFailed,
        DecipherFailed,
        ProbeFailed,
        SelectionNotFound,
        TransferFailed,
        SegmentDecryptFailed,
        ManifestParseFailed,
    )
}


def error_for_code(error_code: str | None, message: str) -> TubeStreamError:
    """Build the exception matching a stored error code."""
    cls = _ERRORS_BY_CODE.get(error_code or "", TubeStreamError)
    return cls(message, error_code=error_code)
