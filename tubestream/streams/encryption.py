"""
Segment decryption state for encrypted HLS playlists.
"""

import logging

from ..core.m3u8_parser import HLSKey
from ..errors import SegmentDecryptFailed
from ..utils.crypto import aes128_cbc_decrypt, iv_to_bytes

logger = logging.getLogger(__name__)


class Encryption:
    """The AES-128 key and IV that apply to one segment."""

    def __init__(self, key: bytes, iv: bytes):
        self.key = key
        self.iv = iv

    @staticmethod
    def check(hls_key: HLSKey):
        """Reject keys this engine cannot use before anything is fetched."""
        if hls_key.method != "AES-128":
            raise SegmentDecryptFailed(f"Unsupported encryption method {hls_key.method}")
        if not hls_key.uri:
            raise SegmentDecryptFailed("AES-128 key has no URI")
        if hls_key.keyformat.lower() != "identity":
            raise SegmentDecryptFailed(f"Unsupported key format {hls_key.keyformat}")

    @classmethod
    def from_key(cls, hls_key: HLSKey, key_bytes: bytes, sequence: int) -> "Encryption":
        cls.check(hls_key)
        return cls(key_bytes, iv_to_bytes(hls_key.iv, sequence))

    def decrypt(self, data: bytes, strip_padding: bool = True) -> bytes:
        return aes128_cbc_decrypt(data, self.key, self.iv, strip_padding=strip_padding)


def decrypt(data: bytes, key: bytes, iv: bytes, strip_padding: bool = True) -> bytes:
    return Encryption(key, iv).decrypt(data, strip_padding=strip_padding)
