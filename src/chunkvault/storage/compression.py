"""
Compression and framing for chunkvault objects.

Frame layout:
- 8 bytes: original (uncompressed) length, big-endian unsigned
- payload: codec output, or the original bytes verbatim when compression
  would not make them strictly smaller

The payload is raw exactly when its length equals the header value, so no
flag byte is needed.
"""

import struct
from typing import Optional

import zstandard as zstd

from chunkvault.core.errors import (
    CompressionError,
    DecompressionError,
    InvalidFormat,
    SizeUndeterminable,
)

HEADER_FORMAT = ">Q"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)


def compress_data(data: bytes, level: int = 1) -> bytes:
    """
    Compress data using zstd.

    Args:
        data: Data to compress
        level: Compression level (1-22, default 1)

    Returns:
        Compressed data (a zstd frame recording its content size)
    """
    cctx = zstd.ZstdCompressor(level=level, write_content_size=True)
    return cctx.compress(data)


def decompress_data(compressed_data: bytes, max_output_size: int = 0) -> bytes:
    """
    Decompress data using zstd.

    Args:
        compressed_data: Compressed data
        max_output_size: Output size to allocate when the frame does not record it

    Returns:
        Decompressed data
    """
    dctx = zstd.ZstdDecompressor()
    return dctx.decompress(compressed_data, max_output_size=max_output_size)


class IdentityCodec:
    """Codec that stores bytes as they are."""

    name = "identity"

    def compress(self, data: bytes) -> bytes:
        return data

    def decompress(self, payload: bytes, known_size: Optional[int] = None) -> bytes:
        if known_size is not None and len(payload) != known_size:
            raise DecompressionError(
                f"Identity payload is {len(payload)} bytes, expected {known_size}"
            )
        return payload


class ZstdCodec:
    """Zstandard codec."""

    name = "zstd"

    def __init__(self, level: int = 1):
        self.level = level

    def compress(self, data: bytes) -> bytes:
        try:
            return compress_data(data, self.level)
        except (zstd.ZstdError, ValueError) as e:
            raise CompressionError(f"zstd compression failed: {e}") from e

    def probe_size(self, payload: bytes) -> int:
        """
        Read the content size recorded in a zstd frame header.

        Raises:
            SizeUndeterminable: If the header is invalid or does not record the size
        """
        try:
            size = zstd.frame_content_size(payload)
        except zstd.ZstdError as e:
            raise SizeUndeterminable(f"Cannot read zstd frame header: {e}") from e
        if size < 0:
            raise SizeUndeterminable("zstd frame does not record its content size")
        return size

    def decompress(self, payload: bytes, known_size: Optional[int] = None) -> bytes:
        """
        Decompress a zstd payload.

        Args:
            payload: zstd frame
            known_size: Expected output size; probed from the frame when None

        Returns:
            Decompressed bytes of exactly the expected size
        """
        # Two-pass path: learn the size first, then decompress into it
        expected = self.probe_size(payload) if known_size is None else known_size

        try:
            data = decompress_data(payload, max_output_size=expected)
        except zstd.ZstdError as e:
            raise DecompressionError(f"zstd decompression failed: {e}") from e

        if len(data) != expected:
            raise DecompressionError(
                f"Decompressed {len(data)} bytes, expected {expected}"
            )
        return data


def get_codec(name: str, level: int = 1):
    """
    Build a codec by name.

    Args:
        name: "zstd" or "identity"
        level: zstd compression level

    Raises:
        CompressionError: If the codec is unknown
    """
    if name == "zstd":
        return ZstdCodec(level)
    if name == "identity":
        return IdentityCodec()
    raise CompressionError(f"Unknown codec: {name}", retryable=False)


class Compressor:
    """Compresses chunks and wraps them in self-describing frames."""

    def __init__(self, codec=None):
        """
        Args:
            codec: Object with compress(data) and decompress(payload, known_size);
                defaults to ZstdCodec()
        """
        self.codec = codec if codec is not None else ZstdCodec()

    def compress(self, chunk: bytes) -> bytes:
        """
        Compress a chunk, keeping it verbatim if compression does not help.

        Returns:
            Payload strictly shorter than the chunk, or the chunk itself
        """
        payload = self.codec.compress(chunk)
        if len(payload) >= len(chunk):
            return chunk
        return payload

    def decompress(self, payload: bytes, known_size: Optional[int] = None) -> bytes:
        """Decompress a payload produced by compress()."""
        if known_size is not None and len(payload) == known_size:
            return payload
        return self.codec.decompress(payload, known_size)

    def frame(self, chunk: bytes) -> bytes:
        """Prefix the compressed payload with the original length."""
        return struct.pack(HEADER_FORMAT, len(chunk)) + self.compress(chunk)

    def unframe(self, data: bytes) -> bytes:
        """
        Recover the original chunk from a frame.

        Raises:
            InvalidFormat: If data is shorter than the header
            DecompressionError: If the payload is corrupt or has the wrong size
        """
        original_size = self.read_header(data)
        return self.decompress(data[HEADER_SIZE:], original_size)

    @staticmethod
    def read_header(data: bytes) -> int:
        """Original size recorded in a frame header."""
        if len(data) < HEADER_SIZE:
            raise InvalidFormat(
                f"Frame is {len(data)} bytes, shorter than the {HEADER_SIZE}-byte header"
            )
        return struct.unpack_from(HEADER_FORMAT, data)[0]
