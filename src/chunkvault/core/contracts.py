"""
Core data structures (dataclasses) for chunkvault.

All core data structures are defined as explicit dataclasses.
"""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Literal, Optional

# Irreducible polynomial of degree 53 used for Rabin fingerprinting
DEFAULT_POLYNOMIAL = 0x3DA3358B4DC173

SUPPORTED_CODECS = ("zstd", "identity")


@dataclass
class Config:
    """Configuration for chunking, storage and reconstruction."""

    # Storage layout
    storage_root: Path = Path("chunkvault-storage")
    metadata_filename: str = "metadata.db"
    shard_depth: int = 0  # number of two-hex-digit directory levels above each object

    # Compression
    codec: Literal["zstd", "identity"] = "zstd"
    zstd_level: int = 1

    # Hashing
    hash_algorithm: str = "sha256"

    # Chunking
    max_chunk_size: int = 64 * 1024
    cut_mask: int = (1 << 12) - 1  # ~4 KiB average chunk
    window_size: int = 48
    polynomial: int = DEFAULT_POLYNOMIAL
    read_buffer_size: int = 8 * 1024

    # Metadata store
    busy_timeout: float = 30.0  # seconds a writer waits for the database lock

    def __post_init__(self):
        self.storage_root = Path(self.storage_root)

    @property
    def objects_dir(self) -> Path:
        """Directory holding one physical object per unique hash."""
        return self.storage_root / "objects"

    @property
    def metadata_path(self) -> Path:
        """SQLite database holding the chunk index and manifests."""
        return self.storage_root / self.metadata_filename

    def validate(self) -> "Config":
        """
        Check value ranges.

        Returns:
            self, so calls can be chained

        Raises:
            ValueError: If any setting is out of range
        """
        if self.max_chunk_size <= 0:
            raise ValueError(f"max_chunk_size must be positive, got {self.max_chunk_size}")
        if self.window_size <= 0:
            raise ValueError(f"window_size must be positive, got {self.window_size}")
        if self.read_buffer_size <= 0:
            raise ValueError(f"read_buffer_size must be positive, got {self.read_buffer_size}")
        if self.cut_mask <= 0 or self.cut_mask & (self.cut_mask + 1):
            raise ValueError(f"cut_mask must be of the form 2**k - 1, got {self.cut_mask:#x}")
        if self.polynomial.bit_length() - 1 <= 8:
            raise ValueError("polynomial degree must be greater than 8")
        if self.codec not in SUPPORTED_CODECS:
            raise ValueError(f"Unknown codec {self.codec!r}, expected one of {SUPPORTED_CODECS}")
        if not 1 <= self.zstd_level <= 22:
            raise ValueError(f"zstd_level must be between 1 and 22, got {self.zstd_level}")
        if self.shard_depth < 0:
            raise ValueError(f"shard_depth must not be negative, got {self.shard_depth}")
        if self.busy_timeout < 0:
            raise ValueError(f"busy_timeout must not be negative, got {self.busy_timeout}")
        return self

    @classmethod
    def from_json(cls, file_path: Path, **overrides) -> "Config":
        """
        Load configuration from a JSON file.

        Unknown keys are rejected so that typos do not silently fall back to
        defaults.

        Args:
            file_path: Path to a JSON object with Config field names as keys
            **overrides: Values that take precedence over the file

        Returns:
            Validated Config object
        """
        with open(file_path, "r") as f:
            config_dict = json.load(f)

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(config_dict) - known)
        if unknown:
            raise ValueError(f"Unknown config keys in {file_path}: {', '.join(unknown)}")

        config_dict.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**config_dict).validate()


@dataclass
class Chunk:
    """
    A unique piece of content in the store.

    The hash is the hex digest of the uncompressed bytes and is the only
    identity a chunk has; two chunks with equal hashes are the same chunk.
    """

    hash: str
    size: int  # uncompressed length in bytes
    location: str  # physical object path
    ref_count: int = 1  # manifest rows referencing this chunk; never decremented
    stored_size: Optional[int] = None  # framed length on disk
    created: bool = False  # True when this call wrote the physical object

    def __eq__(self, other):
        if not isinstance(other, Chunk):
            return NotImplemented
        return self.hash == other.hash

    def __hash__(self):
        return hash(self.hash)


@dataclass
class ManifestEntry:
    """One position of a file's manifest."""

    filename: str
    sequence_number: int
    chunk_hash: str
    location: str


@dataclass
class IngestResult:
    """Outcome of ingesting one file."""

    filename: str
    chunk_hashes: List[str] = field(default_factory=list)
    total_bytes: int = 0
    new_chunks: int = 0
    elapsed_ms: float = 0.0

    @property
    def chunk_count(self) -> int:
        return len(self.chunk_hashes)

    @property
    def deduplicated_chunks(self) -> int:
        return self.chunk_count - self.new_chunks


@dataclass
class StoreStats:
    """Aggregate numbers for a store."""

    unique_chunks: int
    manifest_rows: int
    files: int
    logical_bytes: int  # sum of file sizes as ingested
    unique_bytes: int  # sum of unique chunk sizes before compression
    stored_bytes: int  # sum of framed object sizes on disk

    @property
    def dedup_ratio(self) -> float:
        """Logical bytes per unique byte (1.0 when nothing was deduplicated)."""
        if self.unique_bytes == 0:
            return 1.0
        return self.logical_bytes / self.unique_bytes

    @property
    def compression_ratio(self) -> float:
        """Unique bytes per stored byte."""
        if self.stored_bytes == 0:
            return 1.0
        return self.unique_bytes / self.stored_bytes
