"""
Storage layer: content-addressable chunk store, compression framing, and
transactional metadata (chunk index and manifests).
"""

from chunkvault.storage.chunk_store import ChunkStore
from chunkvault.storage.compression import (
    Compressor,
    IdentityCodec,
    ZstdCodec,
    compress_data,
    decompress_data,
    get_codec,
)
from chunkvault.storage.manifest import ManifestIndex
from chunkvault.storage.metadata import MetadataIndex

__all__ = [
    "ChunkStore",
    "Compressor",
    "IdentityCodec",
    "ZstdCodec",
    "compress_data",
    "decompress_data",
    "get_codec",
    "ManifestIndex",
    "MetadataIndex",
]
