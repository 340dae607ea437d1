"""
AES-128 helpers for encrypted HLS segments.
"""

from Crypto.Cipher import AES
from Crypto.Util.Padding import unpad

from ..errors import SegmentDecryptFailed

BLOCK_SIZE = AES.block_size


def iv_to_bytes(iv_spec: str | None, sequence: int) -> bytes:
    """
    IV from an ``#EXT-X-KEY`` IV attribute, or the media sequence number as a
    big-endian 128-bit integer when the attribute is absent.
    """
    if not iv_spec:
        return sequence.to_bytes(16, byteorder="big")
    hexstr = iv_spec[2:] if iv_spec[:2].lower() == "0x" else iv_spec
    try:
        iv = bytes.fromhex(hexstr)
    except ValueError as exc:
        raise SegmentDecryptFailed(f"Invalid IV {iv_spec!r}") from exc
    if len(iv) < 16:
        iv = (b"\x00" * (16 - len(iv))) + iv
    elif len(iv) > 16:
        iv = iv[-16:]
    return iv


def aes128_cbc_decrypt(data: bytes, key: bytes, iv: bytes, strip_padding: bool = True) -> bytes:
    """Decrypt AES-128-CBC ``data``; PKCS#7 padding is removed unless told otherwise."""
    if len(key) < 16:
        raise SegmentDecryptFailed(f"AES-128 key must be 16 bytes, got {len(key)}")
    if len(data) % BLOCK_SIZE:
        raise SegmentDecryptFailed(f"Ciphertext length {len(data)} is not a multiple of {BLOCK_SIZE}")
    plaintext = AES.new(key[:16], AES.MODE_CBC, iv).decrypt(data)
    if not strip_padding:
        return plaintext
    try:
        return unpad(plaintext, BLOCK_SIZE)
    except ValueError as exc:
        raise SegmentDecryptFailed("Bad PKCS#7 padding, wrong key or IV?") from exc
