"""
Core contracts, errors and identifiers for chunkvault.
"""

from chunkvault.core.contracts import (
    Chunk,
    Config,
    IngestResult,
    ManifestEntry,
    StoreStats,
)
from chunkvault.core.errors import (
    ChunkMissing,
    ChunkNotFound,
    ChunkVaultError,
    CompressionError,
    DecompressionError,
    HashUnavailable,
    IngestFailures,
    InputUnavailable,
    InvalidFormat,
    MetadataError,
    NoChunksFound,
    ReconstructionError,
    SizeUndeterminable,
    StorageIOError,
)
from chunkvault.core.ids import Hasher, normalize_path

__all__ = [
    "Config",
    "Chunk",
    "ManifestEntry",
    "IngestResult",
    "StoreStats",
    "Hasher",
    "normalize_path",
    "ChunkVaultError",
    "InputUnavailable",
    "IngestFailures",
    "HashUnavailable",
    "CompressionError",
    "DecompressionError",
    "InvalidFormat",
    "SizeUndeterminable",
    "StorageIOError",
    "MetadataError",
    "ChunkNotFound",
    "ReconstructionError",
    "ChunkMissing",
    "NoChunksFound",
]
