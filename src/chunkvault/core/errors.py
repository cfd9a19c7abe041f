"""
Error taxonomy for chunkvault.

Every error carries the context needed to diagnose it (filename, chunk hash,
sequence number) and a ``retryable`` flag: I/O faults and transient lock
contention are retryable, missing algorithms and corrupt data are not.
"""

from typing import Dict, List, Optional


class ChunkVaultError(Exception):
    """Base class for all chunkvault errors."""

    retryable = False

    def __init__(
        self,
        message: str,
        filename: Optional[str] = None,
        chunk_hash: Optional[str] = None,
        sequence_number: Optional[int] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.filename = filename
        self.chunk_hash = chunk_hash
        self.sequence_number = sequence_number
        if retryable is not None:
            self.retryable = retryable

    def __str__(self) -> str:
        context = []
        if self.filename is not None:
            context.append(f"file={self.filename}")
        if self.sequence_number is not None:
            context.append(f"seq={self.sequence_number}")
        if self.chunk_hash is not None:
            context.append(f"hash={self.chunk_hash}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class InputUnavailable(ChunkVaultError):
    """The input could not be opened or read before chunking started."""


class HashUnavailable(ChunkVaultError):
    """The configured hash algorithm is not available (fatal)."""


class CompressionError(ChunkVaultError):
    """The codec failed to compress, or is unknown."""


class DecompressionError(ChunkVaultError):
    """The codec reported corruption or produced the wrong size."""


class InvalidFormat(DecompressionError):
    """Framed data is shorter than its header."""


class SizeUndeterminable(DecompressionError):
    """The original size is neither known nor recorded in the payload."""


class StorageIOError(ChunkVaultError):
    """Reading or writing a physical object or input stream failed."""

    retryable = True


class MetadataError(ChunkVaultError):
    """A metadata transaction or constraint failed."""


class ChunkNotFound(ChunkVaultError):
    """The hash is not indexed, or its physical object is gone."""


class ReconstructionError(ChunkVaultError):
    """Rebuilding a file failed."""

    retryable = True


class ChunkMissing(ReconstructionError):
    """A chunk referenced by a manifest cannot be loaded."""

    retryable = False


class NoChunksFound(ReconstructionError):
    """The manifest for a file is empty."""

    retryable = False


class IngestFailures(ChunkVaultError):
    """One or more files of a directory ingestion failed."""

    def __init__(self, message: str, failures: Dict[str, ChunkVaultError], results: List):
        super().__init__(
            message,
            retryable=all(e.retryable for e in failures.values()),
        )
        self.failures = failures  # filename -> error, sorted by filename
        self.results = results  # IngestResult of every file that succeeded
